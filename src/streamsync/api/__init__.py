"""API module for StreamSync.

Structure:
- routers/: API endpoints (sync scheduling, status, cache stats)
- schemas/: Pydantic models for request/response
- dependencies.py: Dependency injection (scheduler, cache from app.state)
- exception_handlers.py: Global error handlers
"""

from streamsync.api.routers import api_router, sync

__all__ = ["api_router", "sync"]
