"""Telegram notification channel manifest."""

from browser_verifier.manifest import PluginManifest
from browser_verifier.notifiers.telegram.channel import TelegramChannel
from browser_verifier.notifiers.telegram.config import TelegramConfig

telegram_manifest = PluginManifest(
    config_cls=TelegramConfig,
    factory=TelegramChannel.from_config,
)
