"""Log notification provider - renders sync notifications as log lines.

Always configured. Useful on headless hosts and as the default renderer when
no webhook is set. Also keeps the last notification per key so a host UI can
poll what is currently "shown".
"""

import logging

from streamsync.domain.ports.notification import (
    INotificationProvider,
    Notification,
    NotificationPriority,
    NotificationResult,
    NotificationType,
)

logger = logging.getLogger(__name__)

_LEVELS = {
    NotificationPriority.LOW: logging.DEBUG,
    NotificationPriority.NORMAL: logging.INFO,
    NotificationPriority.HIGH: logging.WARNING,
}


class LogNotificationProvider(INotificationProvider):
    """Writes every notification to the log."""

    def __init__(self) -> None:
        self._shown: dict[str, Notification] = {}

    @property
    def name(self) -> str:
        return "log"

    @property
    def supported_types(self) -> list[NotificationType]:
        return []

    async def is_configured(self) -> bool:
        return True

    def shown(self, key: str) -> Notification | None:
        """Notification currently displayed under ``key``, if any."""
        return self._shown.get(key)

    async def send(self, notification: Notification) -> NotificationResult:
        if notification.type is NotificationType.SYNC_CLEARED:
            self._shown.pop(notification.key, None)
            logger.debug(f"[NOTIFICATION] cleared '{notification.key}'")
        else:
            self._shown[notification.key] = notification
            level = _LEVELS.get(notification.priority, logging.INFO)
            logger.log(level, f"[NOTIFICATION] {notification.title} {notification.message}".rstrip())

        return NotificationResult(
            success=True,
            provider_name=self.name,
            notification_type=notification.type,
        )


__all__ = ["LogNotificationProvider"]
