"""Domain entities for background content sync and stream cache maintenance.

Hey future me - these are plain dataclasses on purpose! No ORM, no pydantic.
The persistence layer maps them to SyncJobModel rows, the API layer maps them
to pydantic DTOs. Everything in here is immutable except RetryState, which the
scheduler owns and mutates per job lineage.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from streamsync.domain.exceptions import ErrorKind, ValidationException

# Platform scheduler floor for periodic work
MIN_SYNC_FREQUENCY = timedelta(minutes=15)
DEFAULT_SYNC_FREQUENCY = timedelta(minutes=60)
DEFAULT_FLEX_WINDOW = timedelta(minutes=15)

# Stream URLs handed out by the resolver go stale after ~6 hours
DEFAULT_STREAM_TTL = timedelta(hours=6)


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class JobIdentity(str, Enum):
    """Stable keys for the two job lineages the scheduler knows about.

    PERIODIC and ADHOC never share a uniqueness slot - a manual "sync now"
    can run while the periodic job is enqueued or even running.
    """

    PERIODIC = "periodic"
    ADHOC = "adhoc"


class JobState(str, Enum):
    """Lifecycle states of a sync job."""

    NOT_SCHEDULED = "not_scheduled"
    ENQUEUED = "enqueued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        """True while the job is waiting for admission or executing."""
        return self in (JobState.ENQUEUED, JobState.RUNNING)

    @property
    def is_terminal(self) -> bool:
        """True for states a lineage never leaves without an explicit enqueue."""
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class SectionKind(str, Enum):
    """Catalog sections the worker can refresh."""

    CHARTS = "charts"
    PLAYLISTS = "playlists"
    NEW_RELEASES = "new_releases"


class NetworkRequirement(str, Enum):
    """Network class a job needs before the host may run it."""

    CONNECTED = "connected"
    UNMETERED = "unmetered"


@dataclass(frozen=True)
class AdmissionConstraints:
    """Preconditions the host platform evaluates before each run.

    The scheduler only attaches these - it never polls network or battery state.
    """

    network: NetworkRequirement = NetworkRequirement.CONNECTED
    battery_not_low: bool = True

    @classmethod
    def for_network(cls, wifi_only: bool, battery_not_low: bool = True) -> "AdmissionConstraints":
        """Build constraints from the user-facing wifi_only toggle."""
        return cls(
            network=NetworkRequirement.UNMETERED if wifi_only else NetworkRequirement.CONNECTED,
            battery_not_low=battery_not_low,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"network": self.network.value, "battery_not_low": self.battery_not_low}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdmissionConstraints":
        return cls(
            network=NetworkRequirement(data.get("network", NetworkRequirement.CONNECTED.value)),
            battery_not_low=bool(data.get("battery_not_low", True)),
        )


@dataclass(frozen=True)
class SyncJobSpec:
    """Immutable configuration of a sync job.

    A new spec submitted under the same job identity SUPERSEDES the old one -
    there is no merging of toggles between specs.
    """

    frequency: timedelta = DEFAULT_SYNC_FREQUENCY
    wifi_only: bool = True
    flex_window: timedelta = DEFAULT_FLEX_WINDOW
    sync_charts: bool = True
    sync_playlists: bool = True
    sync_new_releases: bool = True

    def __post_init__(self) -> None:
        if self.frequency <= timedelta(0):
            raise ValidationException("Sync frequency must be positive")
        if self.flex_window < timedelta(0):
            raise ValidationException("Flex window must not be negative")

    @property
    def sections(self) -> list[SectionKind]:
        """Enabled catalog sections, in the fixed sync order."""
        enabled = []
        if self.sync_charts:
            enabled.append(SectionKind.CHARTS)
        if self.sync_playlists:
            enabled.append(SectionKind.PLAYLISTS)
        if self.sync_new_releases:
            enabled.append(SectionKind.NEW_RELEASES)
        return enabled

    def with_frequency_floor(self, floor: timedelta = MIN_SYNC_FREQUENCY) -> "SyncJobSpec":
        """Return a copy whose frequency is at least ``floor``."""
        if self.frequency >= floor:
            return self
        return replace(self, frequency=floor)

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency_seconds": int(self.frequency.total_seconds()),
            "wifi_only": self.wifi_only,
            "flex_window_seconds": int(self.flex_window.total_seconds()),
            "sync_charts": self.sync_charts,
            "sync_playlists": self.sync_playlists,
            "sync_new_releases": self.sync_new_releases,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncJobSpec":
        return cls(
            frequency=timedelta(seconds=int(data["frequency_seconds"])),
            wifi_only=bool(data["wifi_only"]),
            flex_window=timedelta(seconds=int(data.get("flex_window_seconds", 0))),
            sync_charts=bool(data.get("sync_charts", True)),
            sync_playlists=bool(data.get("sync_playlists", True)),
            sync_new_releases=bool(data.get("sync_new_releases", True)),
        )


@dataclass(frozen=True)
class ResolvedStream:
    """What the stream resolver hands back for one content id.

    expires_at may be None when the upstream doesn't say - the cache then
    applies DEFAULT_STREAM_TTL.
    """

    url: str
    expires_at: datetime | None = None


@dataclass(frozen=True)
class CacheEntry:
    """A cached playable URL with its expiry."""

    content_id: str
    url: str
    expires_at: datetime
    fetched_at: datetime
    codec: str = "unknown"
    bitrate_kbps: int = 160

    def is_expired(self, now: datetime) -> bool:
        """Expired at exactly expires_at - an entry is never valid AT its expiry."""
        return self.expires_at <= now

    def expires_within(self, window: timedelta, now: datetime) -> bool:
        """True if the entry expires within ``window`` from ``now`` (or already has)."""
        return self.expires_at - now <= window


@dataclass(frozen=True)
class CacheStats:
    """Read-only snapshot of the stream cache."""

    total_entries: int
    expiring_within_30m: int
    expired_count: int

    @property
    def valid_entries(self) -> int:
        return self.total_entries - self.expired_count

    @property
    def hit_rate(self) -> float:
        """Share of entries that are still playable."""
        if self.total_entries == 0:
            return 0.0
        return self.valid_entries / self.total_entries

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_entries": self.total_entries,
            "valid_entries": self.valid_entries,
            "expiring_within_30m": self.expiring_within_30m,
            "expired_count": self.expired_count,
            "hit_rate": round(self.hit_rate, 4),
        }


@dataclass(frozen=True)
class SyncFailure:
    """One recovered per-item failure, recorded in the outcome."""

    kind: ErrorKind
    subject: str
    message: str


@dataclass(frozen=True)
class SyncOutcome:
    """Result of exactly one worker execution.

    Hey future me - this is the Result type! ``error`` is None on success
    (even a PARTIAL success), MAINTENANCE_FAILED when nothing worked. The
    scheduler only ever looks at ``error`` to decide about retries.
    """

    charts_updated: int = 0
    playlists_updated: int = 0
    new_releases_updated: int = 0
    cache_refreshed: int = 0
    cache_evicted: int = 0
    error: ErrorKind | None = None
    failures: tuple[SyncFailure, ...] = field(default_factory=tuple)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def total_updated(self) -> int:
        return self.charts_updated + self.playlists_updated + self.new_releases_updated

    @property
    def error_message(self) -> str | None:
        """Human-readable reason for a failed outcome, if one was recorded."""
        if self.error is None:
            return None
        if not self.failures:
            return None
        return self.failures[-1].message

    def raise_for_error(self) -> None:
        """Raise MaintenanceFailed if this outcome carries an error."""
        if self.error is not None:
            from streamsync.domain.exceptions import MaintenanceFailed

            raise MaintenanceFailed(self.error_message or "Sync maintenance failed")

    @classmethod
    def maintenance_failed(cls, message: str, duration_seconds: float = 0.0) -> "SyncOutcome":
        """Create a total-failure outcome with a single reason."""
        return cls(
            error=ErrorKind.MAINTENANCE_FAILED,
            failures=(SyncFailure(ErrorKind.MAINTENANCE_FAILED, "sync", message),),
            duration_seconds=duration_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "charts_updated": self.charts_updated,
            "playlists_updated": self.playlists_updated,
            "new_releases_updated": self.new_releases_updated,
            "cache_refreshed": self.cache_refreshed,
            "cache_evicted": self.cache_evicted,
            "error": self.error.value if self.error else None,
            "failures": [
                {"kind": f.kind.value, "subject": f.subject, "message": f.message}
                for f in self.failures
            ],
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class RetryState:
    """Retry bookkeeping for one job lineage.

    attempt_count is the number of FAILED runs in the current lineage. It goes
    up on every failure and back to zero on any success or explicit re-enqueue.
    """

    attempt_count: int = 0
    last_error: str | None = None

    def record_failure(self, error: str | None) -> None:
        self.attempt_count += 1
        self.last_error = error

    def reset(self) -> None:
        self.attempt_count = 0
        self.last_error = None


@dataclass(frozen=True)
class JobRecord:
    """Durable view of one job registration (what survives a restart).

    Hey future me - no handles, no channels, no tasks in here. The scheduler
    turns its live registration into a JobRecord for the repository and back.
    """

    identity: JobIdentity
    registration_id: str
    state: JobState
    spec: SyncJobSpec
    constraints: AdmissionConstraints
    next_run_at: datetime
    attempt_count: int = 0
    last_error: str | None = None
    updated_at: datetime | None = None


__all__ = [
    "DEFAULT_FLEX_WINDOW",
    "DEFAULT_STREAM_TTL",
    "DEFAULT_SYNC_FREQUENCY",
    "MIN_SYNC_FREQUENCY",
    "AdmissionConstraints",
    "CacheEntry",
    "CacheStats",
    "JobIdentity",
    "JobRecord",
    "JobState",
    "NetworkRequirement",
    "ResolvedStream",
    "RetryState",
    "SectionKind",
    "SyncFailure",
    "SyncJobSpec",
    "SyncOutcome",
    "ensure_utc_aware",
    "utc_now",
]
