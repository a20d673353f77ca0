"""Configuration for the Telegram notification channel."""

from pydantic import BaseModel, SecretStr


class TelegramConfig(BaseModel):
    """Configuration for the Telegram Bot API channel."""

    bot_token: SecretStr
    api_base_url: str = "https://api.telegram.org"
    parse_mode: str | None = None
    disable_web_page_preview: bool = True
    timeout: float = 10.0
