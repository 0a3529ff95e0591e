"""Services container for dependency injection.

Every long-lived object (cache, quota tracker, YouTube client, converter,
playlist store, rate limiter) is built once at startup by
``build_services`` and stored on ``app.state``. Routes reach it through
``Depends(get_services)``; tests override that dependency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from fastapi import Request

from app.cache import SearchCache
from app.config import Settings
from app.converter import Converter
from app.quota import QuotaTracker
from app.rate_limit import RateLimiter
from app.storage import MemoryPlaylistStore, PlaylistStore, SqlitePlaylistStore
from app.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Container for application services with proper lifecycle management."""

    settings: Settings
    cache: SearchCache
    quota: QuotaTracker
    youtube: YouTubeClient
    converter: Converter
    store: PlaylistStore
    rate_limiter: RateLimiter

    async def open(self) -> None:
        await self.store.open()

    async def close(self) -> None:
        """Clean up resources. Called at application shutdown."""
        await self.youtube.aclose()
        await self.store.close()
        logger.info("Services cleaned up")


def build_services(
    settings: Settings,
    *,
    youtube_transport: httpx.AsyncBaseTransport | None = None,
) -> Services:
    """Wire up every service from *settings*."""
    cache = SearchCache(ttl=settings.search_cache_ttl)
    quota = QuotaTracker(
        daily_limit=settings.youtube_daily_quota,
        search_cost=settings.youtube_search_cost,
        max_searches_per_session=settings.youtube_max_searches_per_session,
        timezone=settings.youtube_quota_timezone,
    )
    youtube = YouTubeClient(
        settings.youtube_api_key,
        quota,
        timeout=settings.request_timeout,
        transport=youtube_transport,
    )
    converter = Converter(
        youtube,
        cache,
        quota,
        batch_size=settings.youtube_batch_size,
        max_results=settings.youtube_max_results,
        throttle=settings.youtube_throttle_ms / 1000,
    )

    memory = MemoryPlaylistStore(settings.playlist_ttl)
    if settings.storage_backend == "sqlite":
        backend = SqlitePlaylistStore(settings.db_abs_path, settings.playlist_ttl)
    elif settings.storage_backend == "memory":
        backend = memory
    else:
        raise ValueError(f"Unknown STORAGE_BACKEND {settings.storage_backend!r}")
    store = PlaylistStore(backend, memory)

    rate_limiter = RateLimiter(
        {
            "conversion": settings.rate_limit_conversion,
            "fetch": settings.rate_limit_fetch,
            "general": settings.rate_limit_general,
            "shared": settings.rate_limit_shared,
        },
        window=settings.rate_limit_window,
    )

    return Services(
        settings=settings,
        cache=cache,
        quota=quota,
        youtube=youtube,
        converter=converter,
        store=store,
        rate_limiter=rate_limiter,
    )


def get_services(request: Request) -> Services:
    """Get services from the app state (dependency injection)."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized. Is the app running?")
    return services
