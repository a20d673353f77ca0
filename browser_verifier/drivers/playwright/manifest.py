"""Playwright driver manifest."""

from browser_verifier.drivers.playwright.config import PlaywrightConfig
from browser_verifier.drivers.playwright.driver import PlaywrightDriver
from browser_verifier.manifest import PluginManifest

playwright_manifest = PluginManifest(
    config_cls=PlaywrightConfig,
    factory=PlaywrightDriver.from_config,
)
