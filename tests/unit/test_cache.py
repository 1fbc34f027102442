"""Test the TTL cache backends and the best-effort wrapper."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY

from disaster_relay.cache.base import decode, encode
from disaster_relay.cache.memory import MemoryTTLCache
from disaster_relay.cache.redis_cache import RedisTTLCache
from disaster_relay.cache.safe import BestEffortCache


class TestCodec:
    def test_compact_json(self):
        assert encode({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_decode_bytes_and_none(self):
        assert decode(b'{"x":1}') == {"x": 1}
        assert decode(None) is None


class TestMemoryTTLCache:
    async def test_get_before_expiry(self, memory_cache):
        await memory_cache.set("k", {"v": 1}, ttl_seconds=60)
        assert await memory_cache.get("k") == {"v": 1}

    async def test_get_after_expiry_is_miss_and_purges(self, memory_cache, sim_clock):
        await memory_cache.set("k", "v", ttl_seconds=60)
        sim_clock.advance(60)

        assert await memory_cache.get("k") is None
        assert await memory_cache.count() == 0

    async def test_set_overwrites_and_resets_ttl(self, memory_cache, sim_clock):
        await memory_cache.set("k", "old", ttl_seconds=60)
        sim_clock.advance(50)
        await memory_cache.set("k", "new", ttl_seconds=60)
        sim_clock.advance(50)

        assert await memory_cache.get("k") == "new"

    async def test_returned_value_is_a_copy(self, memory_cache):
        await memory_cache.set("k", {"items": [1]}, ttl_seconds=60)
        value = await memory_cache.get("k")
        value["items"].append(2)
        assert await memory_cache.get("k") == {"items": [1]}

    async def test_delete(self, memory_cache):
        await memory_cache.set("k", "v", ttl_seconds=60)
        await memory_cache.delete("k")
        await memory_cache.delete("never-set")
        assert await memory_cache.get("k") is None

    async def test_purge_expired_counts_removed(self, memory_cache, sim_clock):
        await memory_cache.set("short", 1, ttl_seconds=10)
        await memory_cache.set("also-short", 2, ttl_seconds=10)
        await memory_cache.set("long", 3, ttl_seconds=3600)
        sim_clock.advance(11)

        assert await memory_cache.count() == 3
        assert await memory_cache.purge_expired() == 2
        assert await memory_cache.count() == 1
        assert await memory_cache.get("long") == 3

    async def test_close_clears(self, memory_cache):
        await memory_cache.set("k", "v", ttl_seconds=60)
        await memory_cache.close()
        assert await memory_cache.count() == 0


class _BrokenBackend:
    async def get(self, key):
        raise ConnectionError("down")

    async def set(self, key, value, ttl_seconds):
        raise ConnectionError("down")

    async def delete(self, key):
        raise ConnectionError("down")

    async def purge_expired(self):
        raise ConnectionError("down")

    async def count(self):
        raise ConnectionError("down")

    async def ping(self):
        raise ConnectionError("down")


class _SlowBackend(_BrokenBackend):
    async def get(self, key):
        await asyncio.sleep(10)


class TestBestEffortCache:
    async def test_passes_through_when_healthy(self, cache):
        await cache.set("k", [1, 2], 60)
        assert await cache.get("k") == [1, 2]
        assert await cache.count() == 1
        assert await cache.ping() is True

    async def test_failures_become_misses(self):
        cache = BestEffortCache(_BrokenBackend())
        before = REGISTRY.get_sample_value(
            "relay_cache_errors_total", {"operation": "get"}
        ) or 0.0

        assert await cache.get("k") is None
        await cache.set("k", "v", 60)
        await cache.delete("k")
        assert await cache.purge_expired() == 0
        assert await cache.count() == 0
        assert await cache.ping() is False

        after = REGISTRY.get_sample_value("relay_cache_errors_total", {"operation": "get"})
        assert after == before + 1

    async def test_slow_backend_times_out_as_miss(self):
        cache = BestEffortCache(_SlowBackend(), op_timeout=0.01)
        assert await cache.get("k") is None

    async def test_failure_is_logged_with_action(self, caplog):
        cache = BestEffortCache(_BrokenBackend())
        with caplog.at_level("WARNING"):
            await cache.get("k")
        assert any(getattr(r, "action", None) == "cache_unavailable" for r in caplog.records)


def _fake_redis() -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


async def _aiter(items):
    for item in items:
        yield item


class TestRedisTTLCache:
    async def test_set_uses_prefix_and_ex(self):
        client = _fake_redis()
        cache = RedisTTLCache(client=client)

        await cache.set("geocode:abc", {"lat": 1.0}, ttl_seconds=86400)

        client.set.assert_awaited_once_with(
            "relay:cache:geocode:abc", '{"lat":1.0}', ex=86400
        )

    async def test_ttl_floor_is_one_second(self):
        client = _fake_redis()
        await RedisTTLCache(client=client).set("k", 1, ttl_seconds=0)
        assert client.set.await_args.kwargs["ex"] == 1

    async def test_get_decodes_json(self):
        client = _fake_redis()
        client.get.return_value = json.dumps({"location": "Miami, FL"}).encode()
        cache = RedisTTLCache(client=client, prefix="test:")

        assert await cache.get("k") == {"location": "Miami, FL"}
        client.get.assert_awaited_once_with("test:k")

    async def test_get_missing_is_none(self):
        assert await RedisTTLCache(client=_fake_redis()).get("k") is None

    async def test_delete_and_ping(self):
        client = _fake_redis()
        cache = RedisTTLCache(client=client)
        await cache.delete("k")
        client.delete.assert_awaited_once_with("relay:cache:k")
        assert await cache.ping() is True

    async def test_purge_is_left_to_redis(self):
        assert await RedisTTLCache(client=_fake_redis()).purge_expired() == 0

    async def test_count_scans_prefix(self):
        client = _fake_redis()
        client.scan_iter = MagicMock(side_effect=lambda **kw: _aiter([b"relay:cache:a", b"relay:cache:b"]))
        cache = RedisTTLCache(client=client)

        assert await cache.count() == 2
        assert client.scan_iter.call_args.kwargs["match"] == "relay:cache:*"

    async def test_not_connected_raises(self):
        with pytest.raises(RuntimeError, match="not connected"):
            await RedisTTLCache().get("k")

    async def test_close_releases_client(self):
        client = _fake_redis()
        cache = RedisTTLCache(client=client)
        await cache.close()
        client.aclose.assert_awaited_once()
        with pytest.raises(RuntimeError):
            _ = cache.redis
