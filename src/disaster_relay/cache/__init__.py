"""TTL key-value cache: protocol, in-memory and Redis backends, best-effort wrapper."""

from disaster_relay.cache.base import CacheEntry, TTLCache
from disaster_relay.cache.memory import MemoryTTLCache
from disaster_relay.cache.redis_cache import RedisTTLCache
from disaster_relay.cache.safe import BestEffortCache

__all__ = [
    "BestEffortCache",
    "CacheEntry",
    "MemoryTTLCache",
    "RedisTTLCache",
    "TTLCache",
]
