"""Canonical ID, key and timestamp factories.

All modules import from here instead of defining local _uuid()/_now() copies.

ID Categories
-------------
1. Entity IDs: UUID v4 strings (disaster id, report id, resource id)
2. Content-derived keys: SHA256[:N] deterministic digests (cache keys)
3. Room IDs: ``disaster_<id>`` strings naming a fan-out group

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc``; never naive.
"""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Generate a new UUID v4 string.  Use for all entity IDs."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def content_hash(*parts: str, length: int = 32) -> str:
    """Generate a deterministic SHA256-based digest from content strings.

    Concatenates all *parts* with ``':'`` before hashing.

    Parameters
    ----------
    *parts:
        Strings to hash together.
    length:
        Number of hex characters to return (default 32, i.e. 128 bits).
    """
    raw = ":".join(parts)
    return hashlib.sha256(raw.encode()).hexdigest()[:length]


def cache_key(kind: str, *parts: str) -> str:
    """Build a cache key: ``<kind>:<digest of parts>``."""
    return f"{kind}:{content_hash(*parts)}"


def room_id(disaster_id: str) -> str:
    """Fan-out room name for a disaster."""
    return f"disaster_{disaster_id}"


def unit_interval(*parts: str) -> float:
    """Deterministic float in [0, 1) derived from *parts*."""
    return int(content_hash(*parts, length=8), 16) / 0x1_0000_0000
