"""Plugin manifests for drivers and notification channels, and their loading."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any

from pydantic import BaseModel

from browser_verifier.drivers.base import BrowserDriver
from browser_verifier.errors import ManifestNotFoundError
from browser_verifier.notifiers.base import NotificationChannel

DRIVER_GROUP = "browser_verifier.drivers"
NOTIFIER_GROUP = "browser_verifier.notifiers"


@dataclass(frozen=True, kw_only=True)
class PluginManifest[ConfigT: BaseModel, PluginT]:
    """Manifest describing a driver or notifier plugin.

    The manifest references the configuration class and the factory used to
    build the plugin, so plugins are only imported once selected by key.
    """

    config_cls: type[ConfigT]
    factory: Callable[[ConfigT], AbstractAsyncContextManager[PluginT]]

    def parse_config(self, raw: str | None) -> ConfigT:
        """Validate a JSON configuration string into the plugin config."""
        return self.config_cls.model_validate_json(raw or "{}")

    @staticmethod
    def load(group: str, key: str) -> "PluginManifest[Any, Any]":
        """Load a plugin manifest by key.

        Args:
            group: Entry point group (drivers or notifiers)
            key: The plugin key as registered in pyproject.toml
                 (e.g., "playwright", "telegram")

        Returns:
            The plugin manifest instance

        Raises:
            ManifestNotFoundError: If no plugin with the given key is found

        """
        entries = entry_points(group=group)

        for entry in entries:
            if entry.name == key:
                manifest: PluginManifest[Any, Any] = entry.load()
                return manifest

        available = [e.name for e in entries]
        raise ManifestNotFoundError(
            f"Plugin '{key}' not found in {group}. Available plugins: {available}"
        )


def load_driver_manifest(key: str) -> PluginManifest[Any, BrowserDriver]:
    """Load a browser driver manifest by key."""
    return PluginManifest.load(DRIVER_GROUP, key)


def load_notifier_manifest(key: str) -> PluginManifest[Any, NotificationChannel]:
    """Load a notification channel manifest by key."""
    return PluginManifest.load(NOTIFIER_GROUP, key)
