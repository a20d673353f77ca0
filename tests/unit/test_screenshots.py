"""Tests for screenshot archiving."""

import logging
from pathlib import Path

import pytest

from browser_verifier.screenshots import ScreenshotArchiver, slugify
from browser_verifier.session import BrowserSession
from browser_verifier.testing.fake_driver import PNG_BYTES


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("app-login as admin", "app-login-as-admin"),
        ("Dashboard / Employees", "dashboard-employees"),
        ("***", "capture"),
    ],
)
def test_slugify(label: str, expected: str) -> None:
    """Labels are reduced to safe file name stems."""
    assert slugify(label) == expected


def test_references_never_repeat(tmp_path: Path) -> None:
    """Repeated labels get strictly increasing stamps even with a frozen clock."""
    archiver = ScreenshotArchiver(directory=tmp_path, clock_ns=lambda: 1000)

    references = [archiver.reference_for("login") for _ in range(3)]

    assert references == ["login-1000.png", "login-1001.png", "login-1002.png"]


async def test_capture_writes_png(tmp_path: Path, session: BrowserSession) -> None:
    """Captures are written under the archiver directory."""
    archiver = ScreenshotArchiver(directory=tmp_path / "screenshots")

    reference = await archiver.capture(session, "home page")

    assert reference is not None
    assert reference.startswith("home-page-")
    assert (tmp_path / "screenshots" / reference).read_bytes() == PNG_BYTES


async def test_capture_failure_returns_none(
    tmp_path: Path,
    session: BrowserSession,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A failed capture is logged and never raised."""
    archiver = ScreenshotArchiver(directory=tmp_path)
    await session.close()

    with caplog.at_level(logging.WARNING):
        reference = await archiver.capture(session, "closed")

    assert reference is None
    assert "Screenshot 'closed' not captured" in caplog.text
    assert list(tmp_path.iterdir()) == []
