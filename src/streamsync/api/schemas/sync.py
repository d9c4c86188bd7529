"""API schemas for content sync scheduling and status."""

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, Field

from streamsync.domain.entities import MIN_SYNC_FREQUENCY, SyncJobSpec

_MIN_FREQUENCY_MINUTES = int(MIN_SYNC_FREQUENCY.total_seconds() // 60)


class ScheduleSyncRequest(BaseModel):
    """Request schema for (re)scheduling the periodic sync.

    Omitted frequency/network fields fall back to the configured defaults
    (STREAMSYNC_SYNC__*). The flex window always comes from configuration.
    """

    frequency_minutes: int | None = Field(
        default=None,
        ge=_MIN_FREQUENCY_MINUTES,
        description="Sync period in minutes (platform floor: 15)",
    )
    wifi_only: bool | None = Field(default=None, description="Only run on unmetered networks")
    sync_charts: bool = Field(default=True, description="Refresh chart sections")
    sync_playlists: bool = Field(default=True, description="Refresh playlist sections")
    sync_new_releases: bool = Field(default=True, description="Refresh new releases")

    def to_spec(self, defaults: SyncJobSpec | None = None) -> SyncJobSpec:
        defaults = defaults or SyncJobSpec()
        frequency = (
            timedelta(minutes=self.frequency_minutes)
            if self.frequency_minutes is not None
            else defaults.frequency
        )
        return SyncJobSpec(
            frequency=frequency,
            wifi_only=defaults.wifi_only if self.wifi_only is None else self.wifi_only,
            flex_window=defaults.flex_window,
            sync_charts=self.sync_charts,
            sync_playlists=self.sync_playlists,
            sync_new_releases=self.sync_new_releases,
        )


class SyncNowRequest(BaseModel):
    """Request schema for a one-shot manual sync."""

    wifi_only: bool = Field(default=False, description="Only run on unmetered networks")


class JobRegistrationResponse(BaseModel):
    """Current registration of one job identity."""

    identity: str
    registration_id: str | None = None
    state: str
    next_run_at: str | None = None
    attempt_count: int = 0
    last_error: str | None = None
    last_run_id: str | None = None
    period_due_at: str | None = None
    spec: dict[str, Any] | None = None
    constraints: dict[str, Any] | None = None


class SyncNowResponse(BaseModel):
    """Response for POST /sync/now."""

    registration_id: str
    state: str
    run_ids: list[str] = Field(default_factory=list)


class SyncStatusResponse(BaseModel):
    """Response for GET /sync/status."""

    scheduled: bool
    state: str
    periodic: JobRegistrationResponse | None = None
    adhoc: JobRegistrationResponse | None = None
    stats: dict[str, Any] = Field(default_factory=dict)


class NotificationSnapshotResponse(BaseModel):
    """What the sync notification currently shows."""

    state: str
    run_id: str | None = None
    title: str | None = None
    message: str | None = None
    summary: str | None = None
    charts_updated: int = 0
    playlists_updated: int = 0
    new_releases_updated: int = 0
    ongoing: bool = False
    indeterminate: bool = False
    updated_at: str | None = None


class CacheStatsResponse(BaseModel):
    """Stream cache statistics."""

    total_entries: int
    valid_entries: int
    expiring_within_30m: int
    expired_count: int
    hit_rate: float
