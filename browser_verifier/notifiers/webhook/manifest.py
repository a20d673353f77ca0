"""Webhook notification channel manifest."""

from browser_verifier.manifest import PluginManifest
from browser_verifier.notifiers.webhook.channel import WebhookChannel
from browser_verifier.notifiers.webhook.config import WebhookConfig

webhook_manifest = PluginManifest(
    config_cls=WebhookConfig,
    factory=WebhookChannel.from_config,
)
