"""Best-effort wrapper around a TTL cache backend.

A cache outage must look like "always miss", never like an error, and a
slow cache must not stall an enrichment chain. Every call is bounded by
``op_timeout`` and any failure (including the timeout) is logged,
counted, and turned into a miss / no-op.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from disaster_relay.core.errors import CacheUnavailable
from disaster_relay.observability import metrics

from .base import TTLCache

logger = logging.getLogger(__name__)


class BestEffortCache:
    """Wraps a :class:`TTLCache`, absorbing every backend failure.

    Args:
        backend: The real store.
        op_timeout: Seconds any single cache call may take.
    """

    def __init__(self, backend: TTLCache, op_timeout: float = 0.25) -> None:
        self._backend = backend
        self._timeout = op_timeout

    @property
    def backend(self) -> TTLCache:
        return self._backend

    async def _call(self, operation: str, coro: Any) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except Exception as exc:
            metrics.record_cache_error(operation)
            err = CacheUnavailable(f"cache {operation} failed: {exc!r}")
            logger.warning(
                "Cache %s error, treating as miss",
                operation,
                extra={"error": str(err), "action": "cache_unavailable"},
            )
            return None

    async def get(self, key: str) -> Any | None:
        return await self._call("get", self._backend.get(key))

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._call("set", self._backend.set(key, value, ttl_seconds))
        logger.debug("Data cached", extra={"key": key, "ttl": ttl_seconds})

    async def delete(self, key: str) -> None:
        await self._call("delete", self._backend.delete(key))

    async def purge_expired(self) -> int:
        removed = await self._call("purge", self._backend.purge_expired())
        return removed or 0

    async def count(self) -> int:
        return await self._call("count", self._backend.count()) or 0

    async def ping(self) -> bool:
        return bool(await self._call("ping", self._backend.ping()))
