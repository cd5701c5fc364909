from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from backend.app.api.http import client_ip
from backend.app.core.errors import RateLimitError
from backend.app.core.rate_limit import FixedWindowRateLimiter, RateLimitDecision
from backend.app.core.settings import Settings
from backend.app.db.gateway import ReadOnlyGateway
from backend.app.db.session import create_engine
from backend.app.services.blob_store import BlobStore, LocalBlobStore, S3BlobStore
from backend.app.services.cache import ResponseCache, create_cache_client
from backend.app.services.cdn_client import CdnImageClient
from backend.app.services.images import ImagePipeline
from backend.app.services.search import SearchService
from backend.app.services.taxonomy import TaxonomyResolver
from backend.app.services.vehicles import VehicleResolver

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    engine: AsyncEngine
    gateway: ReadOnlyGateway
    cache: ResponseCache
    limiter: FixedWindowRateLimiter
    vehicles: VehicleResolver
    search: SearchService
    images: ImagePipeline

    async def aclose(self) -> None:
        await self.cache.aclose()
        await self.images.cdn.aclose()
        await self.engine.dispose()


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.object_store_url:
        return S3BlobStore(
            settings.object_store_bucket,
            endpoint_url=settings.object_store_url,
            access_key=settings.object_store_access_key,
            secret_key=settings.object_store_secret_key,
        )
    return LocalBlobStore(settings.local_blob_root)


def build_container(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    cache: ResponseCache | None = None,
    limiter: FixedWindowRateLimiter | None = None,
    blob_store: BlobStore | None = None,
    cdn: CdnImageClient | None = None,
) -> ServiceContainer:
    engine = engine or create_engine(settings.database_url, application_name=settings.db_application_name)
    gateway = ReadOnlyGateway(engine, timeout=settings.db_query_timeout_seconds)
    taxonomy = TaxonomyResolver(gateway)
    cache = cache or ResponseCache(create_cache_client(settings.redis_url, timeout=settings.redis_timeout_seconds))
    return ServiceContainer(
        settings=settings,
        engine=engine,
        gateway=gateway,
        cache=cache,
        limiter=limiter or FixedWindowRateLimiter(),
        vehicles=VehicleResolver(gateway, taxonomy),
        search=SearchService(
            gateway,
            cache,
            taxonomy=taxonomy,
            cache_ttl_seconds=settings.search_cache_ttl_seconds,
            bind_cursor=settings.cursor_binding,
        ),
        images=ImagePipeline(
            blob_store or build_blob_store(settings),
            cdn or CdnImageClient(timeout=settings.cdn_timeout_seconds),
            prefix=settings.object_store_prefix,
        ),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def rate_limit(bucket: str, limit_setting: str) -> Callable[[Request], Awaitable[RateLimitDecision]]:
    """Dependency factory: one fixed-window counter per (bucket, client IP).

    The decision's headers are parked on ``request.state`` so that every
    response of the route, including errors and 304s, carries them.
    """

    async def dependency(request: Request) -> RateLimitDecision:
        container = get_container(request)
        limit = getattr(container.settings, limit_setting)
        decision = await container.limiter.allow(f"{bucket}:{client_ip(request)}", limit)
        request.state.rate_limit_headers = decision.headers()
        if not decision.allowed:
            logger.info("rate_limit.reject", extra={"extra_data": {"bucket": bucket, "limit": limit}})
            raise RateLimitError(decision.reset_at, retry_after=decision.retry_after)
        return decision

    return dependency
