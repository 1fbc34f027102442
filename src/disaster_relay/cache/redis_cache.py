"""Redis-backed TTL cache.

All keys are namespaced under a configurable prefix (default
``relay:cache:``) so multiple environments can share a single Redis
instance. Expiry is delegated to Redis (``SET ... EX``), which makes
``get`` after expiry atomically absent.

Uses ``redis.asyncio`` for non-blocking I/O.
"""

from __future__ import annotations

import logging
from typing import Any

import redis.asyncio as aioredis

from .base import decode, encode

logger = logging.getLogger(__name__)


class RedisTTLCache:
    """Async Redis TTL cache.

    Args:
        redis_url: Redis connection URL (e.g. ``redis://localhost:6379/0``).
        prefix: Key namespace prefix. Defaults to ``"relay:cache:"``.
        client: Pre-built client (tests inject a fake).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        *,
        prefix: str = "relay:cache:",
        client: aioredis.Redis | None = None,
    ) -> None:
        self._url = redis_url
        self._prefix = prefix
        self._redis: aioredis.Redis | None = client

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        """Establish the Redis connection pool."""
        if self._redis is not None:
            return
        self._redis = aioredis.from_url(
            self._url,
            decode_responses=False,  # We handle decoding ourselves
            max_connections=20,
        )
        await self._redis.ping()
        logger.info("Redis connected: %s", self._url.split("@")[-1])

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed.")

    @property
    def redis(self) -> aioredis.Redis:
        """Return the underlying Redis client, raising if not connected."""
        if self._redis is None:
            raise RuntimeError(
                "RedisTTLCache not connected. Call connect() first."
            )
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    # -- operations ----------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._key(key))
        return decode(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self.redis.set(self._key(key), encode(value), ex=max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> None:
        await self.redis.delete(self._key(key))

    async def purge_expired(self) -> int:
        # Redis evicts expired keys itself.
        return 0

    async def count(self) -> int:
        n = 0
        async for _ in self.redis.scan_iter(match=f"{self._prefix}*", count=200):
            n += 1
        return n

    async def ping(self) -> bool:
        return bool(await self.redis.ping())
