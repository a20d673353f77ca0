"""Telegram notification channel module."""

from browser_verifier.notifiers.telegram.channel import TelegramChannel
from browser_verifier.notifiers.telegram.config import TelegramConfig
from browser_verifier.notifiers.telegram.manifest import telegram_manifest

__all__ = ["TelegramChannel", "TelegramConfig", "telegram_manifest"]
