"""TTL key-value cache interface and JSON codec shared by the backends."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: str  # JSON-encoded
    expires_at: datetime


class TTLCache(Protocol):
    """Async get/set/delete store with per-entry expiry.

    ``get`` never returns an expired value. ``set`` overwrites and resets
    the TTL (last writer wins).
    """

    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def purge_expired(self) -> int:
        ...

    async def count(self) -> int:
        ...

    async def ping(self) -> bool:
        ...


def encode(value: Any) -> str:
    return json.dumps(value, default=str, separators=(",", ":"))


def decode(raw: str | bytes | None) -> Any | None:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)
