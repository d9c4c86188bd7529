"""Sync Worker Core - executes ONE content sync + stream cache maintenance pass.

Hey future me - this is the "do the work" half of background sync! It has NO
loop, NO retry logic and NO scheduling. The SyncScheduler decides when to call
run_sync() and what to do with the outcome.

ALGORITHM (order is fixed!):
1. Catalog sync: charts → playlists → new releases (only the enabled ones).
   Each section is independent - one failing doesn't abort the others.
2. Cache refresh: every entry expiring within 30 minutes (or already expired)
   is re-resolved and put back. One failing id doesn't abort the rest.
3. Eviction: whatever is STILL expired gets dropped.

WHY refresh BEFORE evict? An entry that crossed its expiry boundary while the
catalog sync was running is still a refresh candidate. Evicting first would
throw away an entry we could have extended.

FAILURE POLICY ("best effort, fail only on total failure"):
- at least one attempt (section or refresh) and ZERO successes → MAINTENANCE_FAILED
- anything else → error=None, even if 2 of 3 sections failed
- nothing attempted at all (no sections enabled, no candidates) → success (no-op)

The worker never raises for collaborator errors. Per-item failures become
SyncFailure records in the outcome; the run always returns a SyncOutcome.
"""

import logging
import time
from datetime import timedelta
from typing import Any

from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.domain.entities import (
    SectionKind,
    SyncFailure,
    SyncJobSpec,
    SyncOutcome,
    utc_now,
)
from streamsync.domain.exceptions import (
    ErrorKind,
    ResolutionFailed,
    SectionFetchFailed,
)
from streamsync.domain.ports import ICatalogFetcher, IStreamResolver
from streamsync.infrastructure.observability.logger_template import log_operation

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_WINDOW = timedelta(minutes=30)


class SyncWorkerCore:
    """Runs one sync attempt against the catalog, the resolver and the cache."""

    def __init__(
        self,
        catalog: ICatalogFetcher,
        resolver: IStreamResolver,
        cache: StreamCacheStore,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
    ) -> None:
        """Initialize the worker.

        Args:
            catalog: Catalog section fetcher
            resolver: Stream URL resolver
            cache: Stream URL cache to maintain
            refresh_window: Entries expiring within this window get re-resolved
        """
        self._catalog = catalog
        self._resolver = resolver
        self._cache = cache
        self._refresh_window = refresh_window
        self._stats: dict[str, Any] = {
            "runs_total": 0,
            "runs_failed": 0,
            "sections_failed": 0,
            "resolutions_failed": 0,
            "last_run_at": None,
            "last_outcome": None,
        }

    @property
    def cache(self) -> StreamCacheStore:
        return self._cache

    async def run_sync(self, spec: SyncJobSpec, run_id: str | None = None) -> SyncOutcome:
        """Execute one sync pass.

        Args:
            spec: Which sections to sync
            run_id: Correlation id of this run (for logs only)

        Returns:
            SyncOutcome - error is MAINTENANCE_FAILED only if nothing succeeded
        """
        started = time.monotonic()
        failures: list[SyncFailure] = []
        attempts = 0
        successes = 0
        counts: dict[SectionKind, int] = {kind: 0 for kind in SectionKind}

        async with log_operation(
            logger, "content_sync", run_id=run_id, sections=[s.value for s in spec.sections]
        ) as result_fields:
            # 1. Catalog sections
            for kind in spec.sections:
                attempts += 1
                updated = await self._sync_section(kind, failures)
                if updated is not None:
                    successes += 1
                    counts[kind] = updated

            # 2. Cache refresh - materialize the candidates first, the view is lazy
            refreshed = 0
            for content_id in list(self._cache.refresh_expiring(self._refresh_window)):
                attempts += 1
                if await self._refresh_one(content_id, failures):
                    successes += 1
                    refreshed += 1

            # 3. Eviction (after refresh, see module docstring)
            evicted = await self._cache.evict_expired()

            error = None
            if attempts > 0 and successes == 0:
                error = ErrorKind.MAINTENANCE_FAILED
                failures.append(
                    SyncFailure(
                        kind=ErrorKind.MAINTENANCE_FAILED,
                        subject="sync",
                        message=f"All {attempts} sync steps failed",
                    )
                )

            outcome = SyncOutcome(
                charts_updated=counts[SectionKind.CHARTS],
                playlists_updated=counts[SectionKind.PLAYLISTS],
                new_releases_updated=counts[SectionKind.NEW_RELEASES],
                cache_refreshed=refreshed,
                cache_evicted=evicted,
                error=error,
                failures=tuple(failures),
                duration_seconds=time.monotonic() - started,
            )
            result_fields["error"] = error.value if error else None
            result_fields["total_updated"] = outcome.total_updated

        self._record(outcome)
        return outcome

    # Hey future me - returns None on failure, the count on success. A section
    # that succeeds with 0 updates is still a SUCCESS (nothing new upstream).
    async def _sync_section(self, kind: SectionKind, failures: list[SyncFailure]) -> int | None:
        try:
            updated = await self._catalog.fetch_section(kind)
        except SectionFetchFailed as e:
            logger.warning(f"Catalog section '{kind.value}' failed: {e.message}")
            failures.append(SyncFailure(ErrorKind.SECTION_FETCH_FAILED, kind.value, e.message))
            self._stats["sections_failed"] += 1
            return None
        except Exception as e:
            # Anything else from the collaborator is the same per-section failure
            logger.warning(f"Catalog section '{kind.value}' failed: {e}", exc_info=True)
            failures.append(
                SyncFailure(ErrorKind.SECTION_FETCH_FAILED, kind.value, str(SectionFetchFailed(kind, str(e))))
            )
            self._stats["sections_failed"] += 1
            return None

        logger.debug(f"Catalog section '{kind.value}' updated {updated} items")
        return max(int(updated), 0)

    async def _refresh_one(self, content_id: str, failures: list[SyncFailure]) -> bool:
        # Resolver I/O happens OUTSIDE the store lock - only put() locks
        try:
            resolved = await self._resolver.resolve(content_id)
            await self._cache.put(content_id, resolved.url, resolved.expires_at)
        except ResolutionFailed as e:
            logger.warning(f"Stream refresh failed for '{content_id}': {e.message}")
            failures.append(SyncFailure(ErrorKind.RESOLUTION_FAILED, content_id, e.message))
            self._stats["resolutions_failed"] += 1
            return False
        except Exception as e:
            logger.warning(f"Stream refresh failed for '{content_id}': {e}", exc_info=True)
            failures.append(
                SyncFailure(ErrorKind.RESOLUTION_FAILED, content_id, str(ResolutionFailed(content_id, str(e))))
            )
            self._stats["resolutions_failed"] += 1
            return False
        return True

    def _record(self, outcome: SyncOutcome) -> None:
        self._stats["runs_total"] += 1
        if outcome.error is not None:
            self._stats["runs_failed"] += 1
        self._stats["last_run_at"] = utc_now()
        self._stats["last_outcome"] = outcome.to_dict()

    def get_stats(self) -> dict[str, Any]:
        """Get worker statistics.

        Returns:
            Dictionary with run counters and the most recent outcome
        """
        return {
            **self._stats,
            "refresh_window_seconds": int(self._refresh_window.total_seconds()),
        }
