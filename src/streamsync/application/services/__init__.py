"""Application services - retry policy, notification state machine, stream URLs."""

from streamsync.application.services.retry_policy import MAX_RETRIES, RetryPolicy, next_delay
from streamsync.application.services.stream_url_service import StreamUrlService
from streamsync.application.services.sync_notifier import (
    NotifierSnapshot,
    NotifierState,
    SyncNotifier,
    format_completed_message,
)

__all__ = [
    "MAX_RETRIES",
    "NotifierSnapshot",
    "NotifierState",
    "RetryPolicy",
    "StreamUrlService",
    "SyncNotifier",
    "format_completed_message",
    "next_delay",
]
