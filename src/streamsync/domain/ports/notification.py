"""Notification provider interfaces for the sync notifier.

Hey future me - this is the PORT (interface) for notification renderers!
The SyncNotifier translates job lifecycle into Running / Completed / Failed
and hands each transition to every configured provider. Providers decide how
to render it (log line, webhook, OS notification on the host side, ...).

Architecture:
- SyncNotifier (Application Layer) → INotificationProvider (Port)
- LogNotificationProvider, WebhookNotificationProvider → Implement INotificationProvider

Rendering is fire-and-forget: a provider failure never changes job state.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

# One stable key for every sync notification - each new state REPLACES the previous one
SYNC_NOTIFICATION_KEY = "content_sync"


class NotificationType(str, Enum):
    """Types of notifications the sync notifier emits.

    SYNC_CLEARED tells renderers to dismiss whatever they show under the key
    (a completed run that changed nothing).
    """

    SYNC_RUNNING = "sync_running"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    SYNC_CLEARED = "sync_cleared"


class NotificationPriority(str, Enum):
    """Priority levels for notifications.

    Running is LOW (silent progress indicator), Completed NORMAL. Failed is LOW
    too: it auto-cancels and usually a retry is already queued. HIGH is for
    host-originated notifications.
    """

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class Notification:
    """Notification data object for passing to providers.

    Hey future me - keep it provider-agnostic! ``ongoing`` and ``indeterminate``
    describe the running indicator, ``auto_cancel`` lets the user swipe away a
    completed result. ``key`` is always SYNC_NOTIFICATION_KEY.

    Example:
        notif = Notification(
            type=NotificationType.SYNC_COMPLETED,
            title="New content available!",
            message="3 charts, 2 playlists",
            data={"charts_updated": 3, "playlists_updated": 2},
        )
    """

    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: dict[str, Any] = field(default_factory=dict)
    key: str = SYNC_NOTIFICATION_KEY
    ongoing: bool = False
    indeterminate: bool = False
    auto_cancel: bool = True
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        """Set timestamp if not provided."""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC)


@dataclass
class NotificationResult:
    """Result of sending a notification.

    Providers return this to indicate success/failure. The error field
    contains details if success=False.
    """

    success: bool
    provider_name: str
    notification_type: NotificationType
    error: str | None = None


class INotificationProvider(ABC):
    """Interface for notification providers.

    Each provider must:
    1. Have a unique name (for logs and routing)
    2. Declare which notification types it supports
    3. Implement send() to actually deliver the notification
    4. Implement is_configured() to check if its settings are present
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this provider (e.g., 'log', 'webhook')."""
        pass

    @property
    @abstractmethod
    def supported_types(self) -> list[NotificationType]:
        """List of notification types this provider can handle.

        Return empty list to support ALL types.
        """
        pass

    @abstractmethod
    async def send(self, notification: Notification) -> NotificationResult:
        """Send a notification through this provider.

        Args:
            notification: The notification to send

        Returns:
            NotificationResult indicating success/failure
        """
        pass

    @abstractmethod
    async def is_configured(self) -> bool:
        """Check if this provider is properly configured.

        Returns:
            True if provider has all required settings (URLs, credentials, ...)
        """
        pass

    def supports(self, notification_type: NotificationType) -> bool:
        """Check if this provider supports a notification type.

        Args:
            notification_type: Type to check

        Returns:
            True if supported (or if provider supports all types)
        """
        supported = self.supported_types
        return len(supported) == 0 or notification_type in supported


__all__ = [
    "SYNC_NOTIFICATION_KEY",
    "INotificationProvider",
    "Notification",
    "NotificationPriority",
    "NotificationResult",
    "NotificationType",
]
