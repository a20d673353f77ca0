"""Payload helpers for notification API responses in tests."""

from typing import Any


def telegram_message(
    *,
    chat_id: int | str = -1001234567890,
    text: str = "Verification READY",
    message_id: int = 42,
) -> dict[str, Any]:
    """Create a successful sendMessage response.

    Returns a realistic Telegram Bot API response structure.
    """
    return {
        "ok": True,
        "result": {
            "message_id": message_id,
            "from": {
                "id": 7000000001,
                "is_bot": True,
                "first_name": "Verifier",
                "username": "verifier_bot",
            },
            "chat": {"id": chat_id, "title": "Deployments", "type": "supergroup"},
            "date": 4070908800,
            "text": text,
        },
    }


def telegram_error(
    *, error_code: int = 400, description: str = "Bad Request: chat not found"
) -> dict[str, Any]:
    """Create a failed Bot API response."""
    return {"ok": False, "error_code": error_code, "description": description}
