"""Playback stream URL endpoints.

Hey future me - this is the "insert on first resolution" side of the stream
cache. Playback asks here, StreamUrlService answers from the cache or resolves
and stores. The sync worker keeps the same cache warm in the background.

Endpoints:
- GET    /stream/{content_id}  -> cached or freshly resolved playable URL
- DELETE /stream/{content_id}  -> forget a URL that turned out to be dead
"""

import logging

from fastapi import APIRouter, Depends, status

from streamsync.api.dependencies import get_stream_url_service
from streamsync.api.schemas.stream import StreamUrlResponse
from streamsync.application.services.stream_url_service import StreamUrlService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stream", tags=["Stream"])


@router.get("/{content_id}", response_model=StreamUrlResponse)
async def get_stream_url(
    content_id: str,
    service: StreamUrlService = Depends(get_stream_url_service),
) -> StreamUrlResponse:
    """Get a playable URL for one content id.

    A URL close to expiry is re-resolved instead of handed out.
    """
    entry = await service.get_entry(content_id)
    return StreamUrlResponse(
        content_id=entry.content_id,
        url=entry.url,
        expires_at=entry.expires_at.isoformat(),
        fetched_at=entry.fetched_at.isoformat(),
    )


@router.delete("/{content_id}", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_stream_url(
    content_id: str,
    service: StreamUrlService = Depends(get_stream_url_service),
) -> None:
    """Drop a cached URL (e.g. playback got a 403). Idempotent."""
    removed = await service.invalidate(content_id)
    if not removed:
        logger.debug(f"No cached stream URL for '{content_id}' to invalidate")
