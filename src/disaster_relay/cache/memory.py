"""In-process TTL cache.

Values are stored JSON-encoded so a caller mutating a returned value can
never alter the cached copy, and so the backend behaves like Redis.

The check-expiry-and-purge in :meth:`MemoryTTLCache.get` runs under a
lock, so concurrent readers never observe an expired value and never
double-delete a fresh entry written in between.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any

from disaster_relay.core.clock import IClock, WallClock

from .base import CacheEntry, decode, encode

logger = logging.getLogger(__name__)


class MemoryTTLCache:
    """Thread-safe in-memory TTL cache.

    Args:
        clock: Time source for expiry. Tests pass a ``SimClock``.
    """

    def __init__(self, clock: IClock | None = None) -> None:
        self._clock = clock or WallClock()
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    async def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock.now():
                del self._entries[key]
                logger.debug("Cache entry expired: %s", key)
                return None
            raw = entry.value
        return decode(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        entry = CacheEntry(
            key=key,
            value=encode(value),
            expires_at=self._clock.now() + timedelta(seconds=ttl_seconds),
        )
        with self._lock:
            self._entries[key] = entry

    async def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    async def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock.now()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.info("Expired cache cleared", extra={"count": len(expired)})
        return len(expired)

    async def count(self) -> int:
        """Number of stored entries, including not-yet-purged expired ones."""
        with self._lock:
            return len(self._entries)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._entries.clear()
