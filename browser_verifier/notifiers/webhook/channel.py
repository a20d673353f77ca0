"""Generic JSON webhook notification channel."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import aiohttp
from yarl import URL

from browser_verifier.errors import PublishError
from browser_verifier.notifiers.base import NotificationChannel
from browser_verifier.notifiers.webhook.config import WebhookConfig

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class WebhookChannel(NotificationChannel):
    """Posts ``{text, channel}`` JSON documents to a webhook URL."""

    config: WebhookConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: WebhookConfig
    ) -> AsyncGenerator["WebhookChannel", None]:
        """Create channel with managed session lifecycle."""
        headers = dict(config.headers)
        if config.token is not None:
            headers["Authorization"] = f"Bearer {config.token.get_secret_value()}"
        async with aiohttp.ClientSession(
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=config.timeout),
        ) as session:
            yield cls(config=config, session=session)

    async def publish(self, text: str, target: str) -> bool:
        """Post ``text`` addressed to ``target``; any 2xx counts as delivered."""
        url = URL(self.config.url)
        payload = {self.config.text_field: text}
        if target:
            payload[self.config.target_field] = target

        log.info("Posting webhook notification: host=%s, target=%s", url.host, target)

        async with self.session.post(url, json=payload) as response:
            if response.status >= 400:
                body = await response.text()
                raise PublishError(f"Webhook rejected message: {response.status} {body}")
            return 200 <= response.status < 300
