"""Notification providers package.

Each provider renders SyncNotifier transitions through a different channel:
- log_provider: log lines (always on)
- webhook_provider: Discord/Slack/Gotify/Generic webhooks
"""

from streamsync.config import Settings
from streamsync.domain.ports.notification import INotificationProvider
from streamsync.infrastructure.notifications.log_provider import LogNotificationProvider
from streamsync.infrastructure.notifications.webhook_provider import (
    WebhookNotificationProvider,
)


def build_default_providers(settings: Settings) -> list[INotificationProvider]:
    """Log provider plus the webhook provider when a webhook URL is set."""
    providers: list[INotificationProvider] = [LogNotificationProvider()]
    if settings.notifications.webhook_url:
        providers.append(WebhookNotificationProvider(settings.notifications))
    return providers


__all__ = [
    "LogNotificationProvider",
    "WebhookNotificationProvider",
    "build_default_providers",
]
