"""Dependency injection for API endpoints."""

import logging
from typing import cast

from fastapi import HTTPException, Request

from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.application.services.stream_url_service import StreamUrlService
from streamsync.application.workers.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


# Hey future me, the scheduler is created in lifespan() and attached to app.state. If it's missing
# the lifespan never ran (or crashed) - answer 503 instead of an AttributeError 500.
def get_sync_scheduler(request: Request) -> SyncScheduler:
    """Get the sync scheduler from app state.

    Raises:
        HTTPException: 503 if the scheduler is not initialized
    """
    scheduler = getattr(request.app.state, "sync_scheduler", None)
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Sync scheduler not initialized")
    return cast(SyncScheduler, scheduler)


def get_stream_cache(request: Request) -> StreamCacheStore:
    """Get the stream cache shared by playback and sync maintenance."""
    return get_sync_scheduler(request).cache


def get_stream_url_service(request: Request) -> StreamUrlService:
    """Get the cache-through stream URL service used by playback.

    Raises:
        HTTPException: 503 if the service is not initialized
    """
    service = getattr(request.app.state, "stream_url_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Stream URL service not initialized")
    return cast(StreamUrlService, service)
