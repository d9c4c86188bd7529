"""Pydantic request/response models for the API."""

from streamsync.api.schemas.stream import StreamUrlResponse
from streamsync.api.schemas.sync import (
    CacheStatsResponse,
    JobRegistrationResponse,
    NotificationSnapshotResponse,
    ScheduleSyncRequest,
    SyncNowRequest,
    SyncNowResponse,
    SyncStatusResponse,
)

__all__ = [
    "CacheStatsResponse",
    "JobRegistrationResponse",
    "NotificationSnapshotResponse",
    "ScheduleSyncRequest",
    "StreamUrlResponse",
    "SyncNowRequest",
    "SyncNowResponse",
    "SyncStatusResponse",
]
