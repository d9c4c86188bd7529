"""Tests for the playback stream URL endpoints."""

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from streamsync.application.cache.stream_cache import StreamCacheStore
from streamsync.application.services.stream_url_service import StreamUrlService
from streamsync.config import DatabaseSettings, Settings
from streamsync.domain.entities import ResolvedStream
from streamsync.domain.exceptions import ResolutionFailed
from streamsync.infrastructure.platform import StaticHostPlatform
from streamsync.main import create_app


@pytest.fixture
def resolver() -> AsyncMock:
    resolver = AsyncMock()
    resolver.resolve = AsyncMock(
        side_effect=lambda cid: ResolvedStream(url=f"https://cdn.example/{cid}")
    )
    return resolver


@pytest.fixture
def cache() -> StreamCacheStore:
    return StreamCacheStore()


@pytest.fixture
def client(resolver: AsyncMock, cache: StreamCacheStore) -> Iterator[TestClient]:
    settings = Settings(database=DatabaseSettings(url="sqlite+aiosqlite://"))
    app = create_app(
        catalog=AsyncMock(),
        resolver=resolver,
        host=StaticHostPlatform(),
        settings=settings,
        providers=[],
        cache=cache,
    )
    with TestClient(app) as test_client:
        yield test_client


class TestStreamEndpoints:
    """Test /stream/{content_id}."""

    def test_service_shares_the_sync_cache(
        self, client: TestClient, cache: StreamCacheStore
    ) -> None:
        """Test lifespan puts the service on app.state next to the cache."""
        service = client.app.state.stream_url_service
        assert isinstance(service, StreamUrlService)
        assert client.app.state.cache is cache

    def test_first_resolution_is_cached(
        self, client: TestClient, resolver: AsyncMock, cache: StreamCacheStore
    ) -> None:
        """Test a miss resolves once and the second request is a cache hit."""
        first = client.get("/api/stream/track-1")
        second = client.get("/api/stream/track-1")

        assert first.status_code == 200
        assert first.json()["url"] == "https://cdn.example/track-1"
        assert second.json()["url"] == first.json()["url"]
        resolver.resolve.assert_awaited_once_with("track-1")
        assert cache.get("track-1") is not None

    def test_resolution_failure_is_client_error(
        self, client: TestClient, resolver: AsyncMock
    ) -> None:
        """Test a resolver failure maps through the domain exception handler."""
        resolver.resolve = AsyncMock(side_effect=ResolutionFailed("track-2", "geo blocked"))

        response = client.get("/api/stream/track-2")

        assert response.status_code == 400

    def test_invalidate(self, client: TestClient, resolver: AsyncMock) -> None:
        """Test DELETE drops the entry so the next GET resolves again."""
        client.get("/api/stream/track-1")

        assert client.delete("/api/stream/track-1").status_code == 204
        assert client.delete("/api/stream/track-1").status_code == 204

        client.get("/api/stream/track-1")
        assert resolver.resolve.await_count == 2
