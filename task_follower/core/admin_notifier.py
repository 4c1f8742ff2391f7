"""Admin notification system for failing jobs and daily reports."""

import logging
from datetime import datetime, timedelta

from task_follower.core.errors import DeliveryError
from task_follower.core.ports import MessagingGateway


logger = logging.getLogger(__name__)


class NotificationRateLimiter:
    """Rate limiter for admin notifications to prevent spam.

    Tracks the last alert per key so admins are not flooded with the same
    failure every tick.
    """

    def __init__(self, cooldown_minutes: int) -> None:
        self._cooldown = timedelta(minutes=cooldown_minutes)
        self._notifications: dict[str, datetime] = {}

    def can_notify(self, key: str) -> bool:
        last_notification = self._notifications.get(key)
        if last_notification is None:
            return True
        return datetime.now() - last_notification >= self._cooldown

    def record_notification(self, key: str) -> None:
        self._notifications[key] = datetime.now()


class AdminNotifier:
    """Sends Telegram messages to the configured admin chats."""

    def __init__(
        self,
        gateway: MessagingGateway,
        chat_ids: list[str],
        *,
        enabled: bool = True,
        cooldown_minutes: int = 60,
    ) -> None:
        self._gateway = gateway
        self._chat_ids = list(chat_ids)
        self._enabled = enabled
        self._rate_limiter = NotificationRateLimiter(cooldown_minutes)

    @property
    def chat_ids(self) -> list[str]:
        return list(self._chat_ids)

    async def broadcast(self, text: str) -> int:
        """Send a message to every admin chat.

        Returns:
            Number of chats the message reached
        """
        sent = 0
        for chat_id in self._chat_ids:
            try:
                await self._gateway.send(chat_id, text)
                sent += 1
            except DeliveryError as e:
                logger.error("Failed to send admin message", extra={"chat_id": chat_id, "error": str(e)})
        return sent

    async def notify_admins(self, message: str, severity: str = "warning", *, key: str | None = None) -> None:
        """Alert admins, at most once per cooldown window for the same key.

        Args:
            message: The notification message to send
            severity: Severity level (e.g., "warning", "critical", "info")
            key: Deduplication key; defaults to the message itself
        """
        if not self._enabled:
            logger.debug(
                "Admin notifications disabled, skipping notification",
                extra={"notification": message, "severity": severity},
            )
            return

        if not self._chat_ids:
            logger.warning("No admin chats configured to notify")
            return

        dedupe_key = key or message
        if not self._rate_limiter.can_notify(dedupe_key):
            logger.debug("Admin notification rate limited", extra={"key": dedupe_key})
            return

        self._rate_limiter.record_notification(dedupe_key)
        sent = await self.broadcast(f"[{severity.upper()}] {message}")
        logger.info(
            "Admin notification batch complete",
            extra={"total_admins": len(self._chat_ids), "success_count": sent},
        )
