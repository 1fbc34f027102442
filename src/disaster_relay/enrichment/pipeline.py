"""Cache-aside runner shared by every enrichment kind.

Protocol for one call:

1. look the key up in the (best-effort) cache; a hit returns ``Ok(cached=True)``
2. on a miss, await the primary provider call, bounded by a timeout
3. a non-empty primary result is cached with the kind's TTL and returned
4. an exception, a timeout or an empty result is a degradation: it is
   logged and counted, and the kind's fallback value is returned as
   ``Degraded``. Fallbacks are not cached so the next call retries the
   provider.

Only a failure inside the fallback itself yields ``Fatal``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from disaster_relay.cache.safe import BestEffortCache
from disaster_relay.core.enums import EnrichmentKind
from disaster_relay.core.errors import EnrichmentDegraded
from disaster_relay.observability import metrics

from .result import Degraded, EnrichmentResult, Fatal, Ok

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (list, str, dict)) and not value)


class CacheAsidePipeline:
    """Runs one enrichment through cache, provider and fallback.

    Args:
        cache: Best-effort cache (never raises).
        provider_timeout: Seconds a provider call may take before it is
            treated as failed.
    """

    def __init__(self, cache: BestEffortCache, provider_timeout: float = 5.0) -> None:
        self._cache = cache
        self._timeout = provider_timeout

    @property
    def cache(self) -> BestEffortCache:
        return self._cache

    @property
    def provider_timeout(self) -> float:
        return self._timeout

    async def run(
        self,
        kind: EnrichmentKind,
        key: str,
        primary: Callable[[], Awaitable[T]],
        *,
        ttl_seconds: int,
        encode: Callable[[T], Any],
        decode: Callable[[Any], T],
        fallback: Callable[[str], T] | None = None,
        is_empty: Callable[[T], bool] = _is_empty,
    ) -> EnrichmentResult[T]:
        cached = await self._cache.get(key)
        if cached is not None:
            try:
                value = decode(cached)
            except (ValidationError, ValueError, TypeError, KeyError):
                logger.warning(
                    "Discarding malformed cache entry",
                    extra={"cache_key": key, "kind": kind.value},
                )
                await self._cache.delete(key)
            else:
                metrics.record_cache_lookup(kind.value, hit=True)
                metrics.record_enrichment(kind.value, "cached")
                logger.info(
                    "Cache hit for %s",
                    kind.value,
                    extra={"cache_key": key, "action": "cache_hit"},
                )
                return Ok(value, cached=True)

        metrics.record_cache_lookup(kind.value, hit=False)

        started = time.monotonic()
        try:
            value = await asyncio.wait_for(primary(), timeout=self._timeout)
            if is_empty(value):
                raise EnrichmentDegraded(kind.value, "empty result")
        except asyncio.TimeoutError:
            return self._degrade(kind, key, f"timed out after {self._timeout}s", fallback)
        except EnrichmentDegraded as exc:
            return self._degrade(kind, key, exc.reason, fallback)
        except Exception as exc:
            return self._degrade(kind, key, f"{type(exc).__name__}: {exc}", fallback)
        finally:
            metrics.record_provider_latency(kind.value, time.monotonic() - started)

        await self._cache.set(key, encode(value), ttl_seconds)
        metrics.record_enrichment(kind.value, "ok")
        return Ok(value)

    def _degrade(
        self,
        kind: EnrichmentKind,
        key: str,
        reason: str,
        fallback: Callable[[str], T] | None,
    ) -> EnrichmentResult[T]:
        logger.warning(
            "Enrichment %s degraded, using fallback",
            kind.value,
            extra={"cache_key": key, "reason": reason, "action": "enrichment_degraded"},
        )
        if fallback is None:
            metrics.record_enrichment(kind.value, "degraded")
            return Degraded(None, reason)  # type: ignore[arg-type]
        try:
            value = fallback(reason)
        except Exception as exc:
            metrics.record_enrichment(kind.value, "fatal")
            logger.exception("Fallback for %s failed", kind.value)
            return Fatal(exc)
        metrics.record_enrichment(kind.value, "degraded")
        return Degraded(value, reason)
