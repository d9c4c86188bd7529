"""In-memory store for time-limited playable stream URLs."""

import asyncio
import logging
import re
from collections.abc import Callable, Iterator
from datetime import datetime, timedelta

from streamsync.domain.entities import (
    DEFAULT_STREAM_TTL,
    CacheEntry,
    CacheStats,
    ensure_utc_aware,
    utc_now,
)
from streamsync.domain.exceptions import ValidationException

logger = logging.getLogger(__name__)

# Window used by stats() - matches the worker's refresh window
STATS_EXPIRING_WINDOW = timedelta(minutes=30)

DEFAULT_BITRATE_KBPS = 160

_CONTENT_LENGTH_RE = re.compile(r"clen=(\d+)")


def detect_codec(url: str) -> str:
    """Guess the audio codec from a stream URL's query string."""
    lowered = url.lower()
    if "mime=audio%2fwebm" in lowered:
        return "opus"
    if "mime=audio%2fmp4" in lowered:
        return "m4a"
    if "opus" in url:
        return "opus"
    if "m4a" in url:
        return "m4a"
    return "unknown"


def detect_bitrate(url: str) -> int:
    """Estimate bitrate (kbps) from the ``clen`` URL parameter, defaulting to 160."""
    match = _CONTENT_LENGTH_RE.search(url)
    if match is None:
        return DEFAULT_BITRATE_KBPS
    return int(match.group(1)) // 1000


class ExpiringEntries:
    """Restartable view over ids that expire within a window.

    Hey future me - this is NOT a list! Every ``iter()`` takes a fresh snapshot
    of the store and re-evaluates expiry against the clock at that moment. So
    iterating twice after a put() can yield different ids, and mutating the
    store while iterating is safe (we walk a copy).
    """

    def __init__(self, store: "StreamCacheStore", within: timedelta) -> None:
        self._store = store
        self._within = within

    def __iter__(self) -> Iterator[str]:
        now = self._store.now()
        for entry in self._store.snapshot():
            if entry.expires_within(self._within, now):
                yield entry.content_id

    def __repr__(self) -> str:
        return f"ExpiringEntries(within={self._within})"


class StreamCacheStore:
    """Cache of playable URLs keyed by content id.

    Correctness invariant: get() never hands out an entry whose expires_at is
    at or before "now" - expired entries are cache misses even if eviction
    hasn't run yet.

    Concurrency: the periodic and the adhoc sync may both run maintenance at
    the same time. All MUTATIONS (put, evict, invalidate, clear) go through a
    single asyncio.Lock. Reads don't lock - they see a consistent dict state
    because nothing awaits while the lock is held.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        default_ttl: timedelta = DEFAULT_STREAM_TTL,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Returns the current UTC time (injected for tests)
            default_ttl: Lifetime applied when put() gets no expiry
        """
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._default_ttl = default_ttl

    def now(self) -> datetime:
        return ensure_utc_aware(self._clock())

    def snapshot(self) -> list[CacheEntry]:
        """Copy of all entries, expired ones included."""
        return list(self._entries.values())

    # Yo, get() is lock-free and has NO side effects. Unlike a classic
    # evict-on-read cache it doesn't delete the expired entry - that's
    # evict_expired()'s job - it just refuses to return it.
    def get(self, content_id: str) -> CacheEntry | None:
        """Look up a valid entry.

        Args:
            content_id: Content to look up

        Returns:
            The entry if present and not expired, None otherwise
        """
        entry = self._entries.get(content_id)
        if entry is None:
            return None
        if entry.is_expired(self.now()):
            return None
        return entry

    async def put(
        self,
        content_id: str,
        url: str,
        expires_at: datetime | None = None,
    ) -> CacheEntry:
        """Insert or unconditionally overwrite the entry for ``content_id``.

        Args:
            content_id: Content the URL plays
            url: Playable stream URL
            expires_at: When the URL stops working; None applies the default TTL

        Returns:
            The stored entry
        """
        if not content_id:
            raise ValidationException("content_id must not be empty")
        if not url:
            raise ValidationException(f"Stream URL for '{content_id}' must not be empty")

        now = self.now()
        expiry = ensure_utc_aware(expires_at) if expires_at is not None else now + self._default_ttl
        entry = CacheEntry(
            content_id=content_id,
            url=url,
            expires_at=expiry,
            fetched_at=now,
            codec=detect_codec(url),
            bitrate_kbps=detect_bitrate(url),
        )
        async with self._lock:
            self._entries[content_id] = entry
        return entry

    def refresh_expiring(self, within: timedelta) -> ExpiringEntries:
        """Ids whose ``expires_at - now <= within`` (already-expired ones included).

        Args:
            within: Look-ahead window

        Returns:
            Lazy, restartable iterable of content ids
        """
        if within < timedelta(0):
            raise ValidationException("Refresh window must not be negative")
        return ExpiringEntries(self, within)

    async def evict_expired(self) -> int:
        """Remove every entry with ``expires_at <= now``.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self.now()
            expired_ids = [cid for cid, entry in self._entries.items() if entry.is_expired(now)]
            for content_id in expired_ids:
                del self._entries[content_id]

        if expired_ids:
            logger.debug(f"Evicted {len(expired_ids)} expired stream URLs")
        return len(expired_ids)

    async def invalidate(self, content_id: str) -> bool:
        """Drop one entry regardless of expiry.

        Returns:
            True if an entry was removed
        """
        async with self._lock:
            return self._entries.pop(content_id, None) is not None

    async def clear(self) -> int:
        """Drop all entries.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def stats(self) -> CacheStats:
        """Read-only snapshot of store health."""
        now = self.now()
        entries = self.snapshot()
        expired = sum(1 for entry in entries if entry.is_expired(now))
        expiring = sum(
            1
            for entry in entries
            if not entry.is_expired(now) and entry.expires_within(STATS_EXPIRING_WINDOW, now)
        )
        return CacheStats(
            total_entries=len(entries),
            expiring_within_30m=expiring,
            expired_count=expired,
        )

    def __len__(self) -> int:
        return len(self._entries)
