"""Telegram Bot API notification channel."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp

from browser_verifier.errors import PublishError
from browser_verifier.notifiers.base import NotificationChannel
from browser_verifier.notifiers.telegram.config import TelegramConfig

log = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4096


@dataclass(frozen=True, kw_only=True)
class TelegramChannel(NotificationChannel):
    """Publishes messages to a Telegram chat through a bot."""

    config: TelegramConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: TelegramConfig
    ) -> AsyncGenerator["TelegramChannel", None]:
        """Create channel with managed session lifecycle."""
        async with aiohttp.ClientSession(
            base_url=config.api_base_url,
            timeout=aiohttp.ClientTimeout(total=config.timeout),
        ) as session:
            yield cls(config=config, session=session)

    async def publish(self, text: str, target: str) -> bool:
        """Send ``text`` to the chat identified by ``target``."""
        url = f"/bot{self.config.bot_token.get_secret_value()}/sendMessage"
        payload: dict[str, Any] = {
            "chat_id": target,
            "text": text[:MAX_MESSAGE_LENGTH],
            "disable_web_page_preview": self.config.disable_web_page_preview,
        }
        if self.config.parse_mode:
            payload["parse_mode"] = self.config.parse_mode

        log.info("Sending Telegram message: chat_id=%s, length=%d", target, len(text))

        async with self.session.post(url, json=payload) as response:
            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = {}
            if not isinstance(data, dict):
                raise PublishError(
                    f"Telegram API error: {response.status} unexpected response body"
                )
            if response.status != 200 or not data.get("ok", False):
                description = data.get("description") or await response.text()
                raise PublishError(
                    f"Telegram API error: {response.status} {description}"
                )

        return True
