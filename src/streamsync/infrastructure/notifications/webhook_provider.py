"""Webhook notification provider for Discord, Slack, Gotify, and generic webhooks.

Hey future me - this pushes sync results to external services via HTTP!
Formats:
- Discord: Rich embed with color by priority
- Slack: Header + section blocks
- Gotify: Self-hosted push (priority 0-10)
- Generic: Plain JSON POST (n8n, Zapier, custom endpoints)

Configure via settings (env STREAMSYNC_NOTIFICATIONS__*):
- webhook_url (unset = provider disabled)
- webhook_format (discord, slack, gotify, generic)
- webhook_auth_header (optional, e.g. 'Bearer <token>')
- webhook_timeout_seconds

Only Completed and Failed are pushed. "Syncing..." and "cleared" only make
sense for an on-device indicator, not for a chat channel.
"""

import logging
from typing import Any

import httpx

from streamsync.config import NotificationSettings
from streamsync.domain.ports.notification import (
    INotificationProvider,
    Notification,
    NotificationPriority,
    NotificationResult,
    NotificationType,
)

logger = logging.getLogger(__name__)

_PRIORITY_COLORS = {
    NotificationPriority.LOW: 0x6C757D,  # Gray
    NotificationPriority.NORMAL: 0x0D6EFD,  # Blue
    NotificationPriority.HIGH: 0xDC3545,  # Red
}

_TYPE_EMOJIS = {
    NotificationType.SYNC_RUNNING: "🔄",
    NotificationType.SYNC_COMPLETED: "🎵",
    NotificationType.SYNC_FAILED: "❌",
    NotificationType.SYNC_CLEARED: "🧹",
}


class WebhookNotificationProvider(INotificationProvider):
    """Webhook notification provider for Discord/Slack/Gotify/Generic."""

    def __init__(
        self,
        settings: NotificationSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize with notification settings.

        Args:
            settings: The ``notifications`` settings group
            client: Optional shared HTTP client (tests pass one with a MockTransport)
        """
        self._settings = settings
        self._client = client

    @property
    def name(self) -> str:
        """Provider name."""
        return "webhook"

    @property
    def supported_types(self) -> list[NotificationType]:
        return [NotificationType.SYNC_COMPLETED, NotificationType.SYNC_FAILED]

    async def is_configured(self) -> bool:
        """Check if a webhook URL is set."""
        url = self._settings.webhook_url
        return bool(url and url.strip())

    async def send(self, notification: Notification) -> NotificationResult:
        """Send notification via webhook.

        Args:
            notification: Notification to send

        Returns:
            NotificationResult with success status
        """
        if not await self.is_configured():
            return NotificationResult(
                success=False,
                provider_name=self.name,
                notification_type=notification.type,
                error="Webhook provider not configured",
            )

        webhook_format = self._settings.webhook_format
        try:
            payload = self._build_payload(notification, webhook_format)
            await self._send_request(payload)
        except httpx.HTTPError as e:
            logger.error(f"[NOTIFICATION] Webhook failed: {e}")
            return NotificationResult(
                success=False,
                provider_name=self.name,
                notification_type=notification.type,
                error=str(e),
            )

        logger.info(
            f"[NOTIFICATION] Webhook sent ({webhook_format}): "
            f"{notification.type.value} - {notification.title[:50]}"
        )
        return NotificationResult(
            success=True,
            provider_name=self.name,
            notification_type=notification.type,
        )

    def _build_payload(self, notification: Notification, format_type: str) -> dict[str, Any]:
        """Build webhook payload based on format type."""
        if format_type == "discord":
            return self._build_discord_payload(notification)
        if format_type == "slack":
            return self._build_slack_payload(notification)
        if format_type == "gotify":
            return self._build_gotify_payload(notification)
        return self._build_generic_payload(notification)

    def _build_discord_payload(self, notification: Notification) -> dict[str, Any]:
        """Discord embed. Limits: 256 chars title, 4096 description, 25 fields."""
        emoji = _TYPE_EMOJIS.get(notification.type, "📬")
        fields = [
            {"name": str(key)[:256], "value": str(value)[:1024], "inline": True}
            for key, value in list(notification.data.items())[:25]
        ]
        embed: dict[str, Any] = {
            "title": f"{emoji} {notification.title}"[:256],
            "description": notification.message[:4096],
            "color": _PRIORITY_COLORS.get(notification.priority, 0x0D6EFD),
            "timestamp": notification.timestamp.isoformat() if notification.timestamp else None,
            "footer": {"text": f"StreamSync • {notification.type.value}"},
        }
        if fields:
            embed["fields"] = fields
        return {"embeds": [embed]}

    def _build_slack_payload(self, notification: Notification) -> dict[str, Any]:
        """Slack blocks: header, message, optional fields."""
        emoji = _TYPE_EMOJIS.get(notification.type, "📬")
        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"{emoji} {notification.title}"[:150],
                    "emoji": True,
                },
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": notification.message[:3000]},
            },
        ]
        if notification.data:
            blocks.append(
                {
                    "type": "section",
                    "fields": [
                        {"type": "mrkdwn", "text": f"*{k}:* {v}"}
                        for k, v in list(notification.data.items())[:10]
                    ],
                }
            )
        return {"blocks": blocks}

    def _build_gotify_payload(self, notification: Notification) -> dict[str, Any]:
        """Gotify push. Priority 4+ triggers a push on mobile."""
        gotify_priority = {
            NotificationPriority.LOW: 2,
            NotificationPriority.NORMAL: 5,
            NotificationPriority.HIGH: 8,
        }
        return {
            "title": notification.title,
            "message": notification.message,
            "priority": gotify_priority.get(notification.priority, 5),
        }

    def _build_generic_payload(self, notification: Notification) -> dict[str, Any]:
        """Generic JSON - the notification as-is."""
        return {
            "type": notification.type.value,
            "key": notification.key,
            "title": notification.title,
            "message": notification.message,
            "priority": notification.priority.value,
            "timestamp": notification.timestamp.isoformat() if notification.timestamp else None,
            "data": notification.data,
            "source": "streamsync",
        }

    async def _send_request(self, payload: dict[str, Any]) -> None:
        """POST the payload, raising httpx.HTTPError on transport or HTTP errors."""
        headers = {"User-Agent": "StreamSync/1.0"}
        if self._settings.webhook_auth_header:
            headers["Authorization"] = self._settings.webhook_auth_header

        url = str(self._settings.webhook_url)
        if self._client is not None:
            response = await self._client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return

        async with httpx.AsyncClient(timeout=self._settings.webhook_timeout_seconds) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()


__all__ = ["WebhookNotificationProvider"]
