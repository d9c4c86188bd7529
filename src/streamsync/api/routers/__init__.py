"""API router initialization."""

# Hey future me, this is the MAIN API router aggregator! It gets mounted at /api in main.py,
# so each router's own prefix makes endpoints /api/sync/... and /api/stream/...

from fastapi import APIRouter

from streamsync.api.routers import stream, sync

api_router = APIRouter()
api_router.include_router(sync.router)
api_router.include_router(stream.router)

__all__ = ["api_router", "stream", "sync"]
