"""FastAPI application factory.

Hey future me - the catalog fetcher, stream resolver and host platform are
EXTERNAL to this package (they talk to the music service / the OS). The host
process builds them and hands them in here; lifespan() wires everything else.

    app = create_app(catalog=MyCatalog(), resolver=MyResolver(), host=StaticHostPlatform())
    uvicorn.run(app)
"""

import logging

from fastapi import FastAPI

from streamsync.api import api_router
from streamsync.api.exception_handlers import register_exception_handlers
from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.config import Settings, get_settings
from streamsync.domain.ports import (
    ICatalogFetcher,
    IHostPlatform,
    INotificationProvider,
    IStreamResolver,
)
from streamsync.infrastructure.lifecycle import lifespan

logger = logging.getLogger(__name__)


def create_app(
    catalog: ICatalogFetcher,
    resolver: IStreamResolver,
    host: IHostPlatform,
    settings: Settings | None = None,
    providers: list[INotificationProvider] | None = None,
    cache: StreamCacheStore | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        catalog: Catalog section fetcher
        resolver: Stream URL resolver
        host: Host platform evaluating admission constraints
        settings: Settings (defaults to get_settings())
        providers: Notification renderers (defaults to log + optional webhook)
        cache: Stream cache shared with playback (created if omitted)

    Returns:
        Configured FastAPI app; the sync scheduler starts with the lifespan
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Background content sync and stream URL cache maintenance",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.resolver = resolver
    app.state.host = host
    app.state.providers = providers
    app.state.cache = cache

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    return app


__all__ = ["create_app"]
