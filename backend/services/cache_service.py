"""
Cache-aside helper around Redis.

The cache is strictly opportunistic: if Redis is not configured, cannot be
reached, or fails mid-operation, callers get the directly computed value
and the failure is only logged.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from config.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheClient:
    """
    Redis-backed cache with an explicit lifecycle.

    One instance lives on ``app.state`` for the lifetime of the app.
    When ``redis_url`` is empty the client stays disabled and every
    operation degrades to its no-cache behaviour.
    """

    def __init__(self, redis_url: str | None, default_ttl: int = 300):
        self.redis_url = redis_url
        self.default_ttl = default_ttl
        self._redis: Redis | None = None

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def connect(self) -> None:
        """Create the Redis client. Connections are opened lazily on first use."""
        if not self.redis_url or self._redis is not None:
            return
        try:
            self._redis = Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
            logger.info("Cache client initialized")
        except (RedisError, ValueError) as e:
            logger.warning("Cache client initialization failed, caching disabled", error=str(e))
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except RedisError as e:
                logger.warning("Cache client close failed", error=str(e))
            self._redis = None
            logger.info("Cache client closed")

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        ttl: int | None = None,
        should_cache: Callable[[T], bool] | None = None,
    ) -> T:
        """
        Return the cached value for ``key`` or compute, store and return it.

        Args:
            key: Cache key.
            fetcher: Coroutine function producing a JSON-serializable value.
            ttl: Time to live in seconds (defaults to the client's TTL).
            should_cache: Predicate deciding whether a fetched value is stored.
                Values it rejects are returned but never cached.
        """
        if self._redis is None:
            return await fetcher()

        try:
            cached = await self._redis.get(key)
            if cached is not None:
                logger.debug("Cache hit", key=key)
                return json.loads(cached)
        except (RedisError, ValueError) as e:
            logger.warning("Cache read failed, fetching directly", key=key, error=str(e))
            return await fetcher()

        data = await fetcher()
        if should_cache is not None and not should_cache(data):
            logger.debug("Fetched value not cached", key=key)
            return data

        try:
            await self._redis.setex(key, ttl or self.default_ttl, json.dumps(data, default=str))
        except (RedisError, TypeError) as e:
            logger.warning("Cache write failed", key=key, error=str(e))
        return data

    async def invalidate(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Returns:
            Number of keys deleted (0 when the cache is unavailable).
        """
        if self._redis is None:
            return 0
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
            logger.debug("Cache invalidated", pattern=pattern, keys=len(keys))
            return len(keys)
        except RedisError as e:
            logger.warning("Cache invalidation failed", pattern=pattern, error=str(e))
            return 0

    async def increment(self, key: str, window_seconds: int) -> int | None:
        """
        Increment a fixed-window counter.

        Returns:
            The new count, or None when the cache is unavailable.
        """
        if self._redis is None:
            return None
        try:
            count = await self._redis.incr(key)
            if count == 1:
                await self._redis.expire(key, window_seconds)
            return int(count)
        except RedisError as e:
            logger.warning("Cache counter failed", key=key, error=str(e))
            return None

    async def ping(self) -> bool:
        if self._redis is None:
            return False
        try:
            return bool(await self._redis.ping())
        except RedisError as e:
            logger.warning("Cache ping failed", error=str(e))
            return False


def patient_cache_pattern(user_id: str) -> str:
    """Glob matching every cached entry derived from one patient's data."""
    return f"patient:{user_id}:*"


def get_cache(request: Request) -> CacheClient:
    """FastAPI dependency returning the app's cache client."""
    return request.app.state.cache


async def cached_json(cache: CacheClient, key: str, fetcher: Callable[[], Any], ttl: int | None = None) -> Any:
    """Run a synchronous fetcher through the cache, off the event loop."""
    async def _fetch() -> Any:
        return await asyncio.to_thread(fetcher)

    return await cache.get_or_set(key, _fetch, ttl)
