"""Configuration module for StreamSync."""

from .settings import (
    CacheSettings,
    DatabaseSettings,
    NotificationSettings,
    ObservabilitySettings,
    RetrySettings,
    Settings,
    SyncSettings,
    get_settings,
)

__all__ = [
    "CacheSettings",
    "DatabaseSettings",
    "NotificationSettings",
    "ObservabilitySettings",
    "RetrySettings",
    "Settings",
    "SyncSettings",
    "get_settings",
]
