from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Set, Tuple, TypeVar

import redis.asyncio as redis

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheClient(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> Any: ...

    async def ping(self) -> Any: ...

    async def aclose(self) -> None: ...


class MemoryCacheClient:
    """Process-local stand-in for Redis with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        expires_at = self._clock() + ex if ex else None
        async with self._lock:
            self._data[key] = (value, expires_at)
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self._data.clear()


def create_cache_client(redis_url: Optional[str], timeout: float = 0.25) -> CacheClient:
    if not redis_url:
        return MemoryCacheClient()
    # bounded sockets: an unreachable Redis surfaces as a fast error, i.e. a cache miss
    return redis.Redis.from_url(
        redis_url,
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


def search_cache_key(params: Mapping[str, Any]) -> str:
    """Canonical key: independent of mapping order, unset values dropped."""
    canonical = {k: v for k, v in params.items() if v is not None}
    return "search:" + json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)


class ResponseCache:
    """Look-aside cache that never fails a request because of the backend."""

    def __init__(self, client: CacheClient):
        self.client = client
        self._pending: Set[asyncio.Task] = set()

    async def cache_or_compute(self, key: str, compute: Callable[[], Awaitable[T]], ttl_seconds: int) -> T:
        try:
            cached = await self.client.get(key)
        except Exception as exc:
            logger.warning("cache.get.fail", extra={"extra_data": {"key": key, "error": str(exc)}})
            return await compute()

        if cached is not None:
            try:
                value = json.loads(cached)
            except ValueError:
                logger.warning("cache.decode.fail", extra={"extra_data": {"key": key}})
            else:
                logger.debug("cache.hit", extra={"extra_data": {"key": key}})
                return value

        logger.debug("cache.miss", extra={"extra_data": {"key": key}})
        value = await compute()
        self._schedule_store(key, value, ttl_seconds)
        return value

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except Exception:
            return False

    async def drain(self) -> None:
        """Wait for scheduled stores; used on shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self.client.aclose()

    def _schedule_store(self, key: str, value: Any, ttl_seconds: int) -> None:
        task = asyncio.create_task(self._store(key, value, ttl_seconds))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _store(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            payload = json.dumps(value, default=str)
            await self.client.set(key, payload, ex=ttl_seconds)
        except Exception as exc:
            logger.warning("cache.set.fail", extra={"extra_data": {"key": key, "error": str(exc)}})
