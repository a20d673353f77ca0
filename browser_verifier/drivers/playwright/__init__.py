"""Playwright driver module."""

from browser_verifier.drivers.playwright.config import PlaywrightConfig
from browser_verifier.drivers.playwright.driver import PlaywrightDriver, PlaywrightPage
from browser_verifier.drivers.playwright.manifest import playwright_manifest

__all__ = ["PlaywrightConfig", "PlaywrightDriver", "PlaywrightPage", "playwright_manifest"]
