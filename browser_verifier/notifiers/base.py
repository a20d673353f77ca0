"""Abstract base class for notification channels."""

from abc import ABC, abstractmethod


class NotificationChannel(ABC):
    """A fire-and-forget destination for run summaries."""

    @abstractmethod
    async def publish(self, text: str, target: str) -> bool:
        """Send ``text`` to ``target`` (chat, room or channel identifier).

        Returns:
            True if the channel accepted the message, False otherwise

        Raises:
            PublishError: If the channel rejected the request outright

        """
