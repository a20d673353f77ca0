"""Configuration for the generic webhook notification channel."""

from collections.abc import Mapping

from pydantic import BaseModel, SecretStr


class WebhookConfig(BaseModel):
    """Configuration for a JSON webhook (Slack-compatible payload)."""

    url: str
    token: SecretStr | None = None
    text_field: str = "text"
    target_field: str = "channel"
    headers: Mapping[str, str] = {}
    timeout: float = 10.0
