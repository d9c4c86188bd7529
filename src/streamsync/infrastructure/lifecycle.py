"""Application lifecycle management for startup and shutdown tasks.

This module handles the FastAPI lifespan context manager that wires the sync
scheduler into the app.

Startup order:
1. Logging
2. Database + tables
3. SyncScheduler (worker, notifier, retry policy from settings)
4. StreamUrlService on the same cache (playback path)
5. Restore persisted job registrations
6. Start the dispatch loop

create_app() puts the external collaborators (catalog, resolver, host) and the
settings on app.state BEFORE the lifespan runs - this module only reads them.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from streamsync.application.services.stream_url_service import StreamUrlService
from streamsync.application.workers.sync_scheduler import create_sync_scheduler
from streamsync.config import Settings, get_settings
from streamsync.domain.exceptions import ConfigurationError
from streamsync.infrastructure.notifications import build_default_providers
from streamsync.infrastructure.observability import configure_logging
from streamsync.infrastructure.persistence import Database

logger = logging.getLogger(__name__)

_REQUIRED_COLLABORATORS = ("catalog", "resolver", "host")


# Listen future me, @asynccontextmanager makes this a CONTEXT MANAGER for FastAPI lifespan!
# Everything before `yield` runs at STARTUP, everything after runs at SHUTDOWN. The try/finally
# ensures the scheduler loop is stopped and the DB closed even if startup crashes halfway.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown tasks including:
    - Logging configuration
    - Database initialization
    - Sync scheduler creation, restore and start
    - Resource cleanup
    """
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting application: %s", settings.app_name)

    missing = [name for name in _REQUIRED_COLLABORATORS if getattr(app.state, name, None) is None]
    if missing:
        raise ConfigurationError(
            f"Missing sync collaborators on app.state: {', '.join(missing)}. "
            "Pass them to create_app()."
        )

    db: Database | None = None
    scheduler = None
    try:
        db = Database(settings)
        app.state.db = db
        await db.create_tables()
        logger.info("Database initialized: %s", settings.database.url)

        providers = getattr(app.state, "providers", None)
        if providers is None:
            providers = build_default_providers(settings)

        scheduler = create_sync_scheduler(
            settings=settings,
            catalog=app.state.catalog,
            resolver=app.state.resolver,
            host=app.state.host,
            cache=getattr(app.state, "cache", None),
            providers=providers,
            session_factory=db.session_factory,
        )
        app.state.sync_scheduler = scheduler
        app.state.cache = scheduler.cache
        app.state.stream_url_service = StreamUrlService(
            cache=scheduler.cache,
            resolver=app.state.resolver,
            refresh_window=settings.cache.refresh_window,
        )

        restored = await scheduler.restore()
        logger.info("Restored %d sync job registration(s)", restored)

        await scheduler.start()

        yield

    except Exception as e:
        logger.exception("Error during application startup: %s", e)
        raise
    finally:
        logger.info("Shutting down application")

        if scheduler is not None:
            try:
                await scheduler.stop()
            except Exception as e:
                logger.exception("Error stopping sync scheduler: %s", e)

        if db is not None:
            try:
                await db.close()
                logger.info("Database connection closed")
            except Exception as e:
                logger.exception("Error closing database: %s", e)


__all__ = ["lifespan"]
