"""Configuration for the Playwright driver."""

from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, Field


class PlaywrightConfig(BaseModel):
    """Configuration for the Playwright driver."""

    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    headless: bool = True
    slow_mo_ms: float = Field(default=0, ge=0)
    launch_args: Sequence[str] = ("--no-sandbox", "--disable-dev-shm-usage")
    channel: str | None = None
