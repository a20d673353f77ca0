"""Webhook notification channel module."""

from browser_verifier.notifiers.webhook.channel import WebhookChannel
from browser_verifier.notifiers.webhook.config import WebhookConfig
from browser_verifier.notifiers.webhook.manifest import webhook_manifest

__all__ = ["WebhookChannel", "WebhookConfig", "webhook_manifest"]
