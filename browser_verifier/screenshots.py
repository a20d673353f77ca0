"""Screenshot capture keyed by scenario and step label."""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from browser_verifier.errors import VerificationError
from browser_verifier.session import BrowserSession

log = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^a-z0-9]+")


def slugify(label: str) -> str:
    """Lowercase ``label`` and collapse anything but [a-z0-9] into dashes."""
    slug = _UNSAFE.sub("-", label.lower()).strip("-")
    return slug or "capture"


@dataclass(kw_only=True)
class ScreenshotArchiver:
    """Writes full-page captures under ``directory`` with unique names."""

    directory: Path
    full_page: bool = True
    clock_ns: Callable[[], int] = time.monotonic_ns
    _last_stamp: int = field(default=0, init=False, repr=False)

    def reference_for(self, label: str) -> str:
        """Build a reference that never repeats within this archiver."""
        stamp = max(self.clock_ns(), self._last_stamp + 1)
        self._last_stamp = stamp
        return f"{slugify(label)}-{stamp}.png"

    async def capture(self, session: BrowserSession, label: str) -> str | None:
        """Capture the session's page; returns None when capture failed.

        A failed capture is never fatal to the caller.
        """
        reference = self.reference_for(label)
        try:
            data = await session.screenshot(full_page=self.full_page)
            await asyncio.to_thread(self._write, reference, data)
        except (VerificationError, OSError) as exc:
            log.warning("Screenshot '%s' not captured: %s", label, exc)
            return None
        log.debug("Screenshot captured: %s", reference)
        return reference

    def _write(self, reference: str, data: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        (self.directory / reference).write_bytes(data)
