"""Stream URL service - cache-through resolution of playable URLs.

Hey future me - this is what playback calls! It's the "insert on first
resolution" side of the stream cache; the sync worker is the "refresh before
expiry" side. Both write through StreamCacheStore.put().

A cached URL that expires within the refresh window is treated like a miss:
handing out a URL that dies mid-track is worse than one extra resolve.
"""

import logging
from collections.abc import Iterable
from datetime import timedelta

from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.domain.entities import CacheEntry
from streamsync.domain.exceptions import ResolutionFailed, ValidationException
from streamsync.domain.ports import IStreamResolver

logger = logging.getLogger(__name__)


class StreamUrlService:
    """Resolve playable URLs through the stream cache."""

    def __init__(
        self,
        cache: StreamCacheStore,
        resolver: IStreamResolver,
        refresh_window: timedelta = timedelta(minutes=30),
    ) -> None:
        self._cache = cache
        self._resolver = resolver
        self._refresh_window = refresh_window

    async def get_stream_url(self, content_id: str) -> str:
        """Get a playable URL, resolving (and caching) it when needed.

        Args:
            content_id: Content to play

        Returns:
            Playable stream URL

        Raises:
            ValidationException: If content_id is empty
            ResolutionFailed: If the resolver could not produce a URL
        """
        entry = await self.get_entry(content_id)
        return entry.url

    async def get_entry(self, content_id: str) -> CacheEntry:
        """Like get_stream_url() but returns the full cache entry."""
        if not content_id:
            raise ValidationException("content_id must not be empty")

        cached = self._cache.get(content_id)
        if cached is not None and not cached.expires_within(self._refresh_window, self._cache.now()):
            logger.debug(f"Stream cache hit for '{content_id}'")
            return cached

        return await self._resolve_and_store(content_id)

    async def prefetch(self, content_ids: Iterable[str]) -> int:
        """Resolve every id that is missing or about to expire.

        Failures are logged and skipped - prefetching is best effort.

        Returns:
            Number of ids (re)resolved
        """
        refreshed = 0
        now = self._cache.now()
        for content_id in dict.fromkeys(content_ids):
            cached = self._cache.get(content_id)
            if cached is not None and not cached.expires_within(self._refresh_window, now):
                continue
            try:
                await self._resolve_and_store(content_id)
            except (ResolutionFailed, ValidationException) as e:
                logger.warning(f"Prefetch skipped '{content_id}': {e.message}")
                continue
            refreshed += 1

        if refreshed:
            logger.info(f"Prefetched {refreshed} stream URLs")
        return refreshed

    async def invalidate(self, content_id: str) -> bool:
        """Forget a URL that turned out to be dead (e.g. HTTP 403 on playback)."""
        return await self._cache.invalidate(content_id)

    async def _resolve_and_store(self, content_id: str) -> CacheEntry:
        try:
            resolved = await self._resolver.resolve(content_id)
        except ResolutionFailed:
            raise
        except Exception as e:
            raise ResolutionFailed(content_id, str(e)) from e

        return await self._cache.put(content_id, resolved.url, resolved.expires_at)
