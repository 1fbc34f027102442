"""Application context: the single owner of every long-lived component.

Built once per process by :func:`build_context` and threaded into the
API, the CLI and tests. There are no module-level clients, caches or
socket registries anywhere else in the package.

Usage::

    ctx = build_context(load_settings("relay.toml"))
    await ctx.start()
    ...
    await ctx.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import Any

from disaster_relay.admission.limiter import FixedWindowLimiter
from disaster_relay.bus.rooms import RoomBus
from disaster_relay.cache.base import TTLCache
from disaster_relay.cache.memory import MemoryTTLCache
from disaster_relay.cache.redis_cache import RedisTTLCache
from disaster_relay.cache.safe import BestEffortCache
from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.config import Settings
from disaster_relay.core.errors import ConfigError
from disaster_relay.enrichment.pipeline import CacheAsidePipeline
from disaster_relay.enrichment.providers.base import (
    Geocoder,
    ImageVerifier,
    LocationExtractor,
    OfficialUpdatesSource,
    SocialMediaSource,
)
from disaster_relay.enrichment.providers.builtin import (
    HeuristicImageVerifier,
    KeywordSocialFeed,
    LookupGeocoder,
    PatternLocationExtractor,
    StaticOfficialFeed,
)
from disaster_relay.enrichment.providers.gemini import GeminiProvider
from disaster_relay.enrichment.providers.nominatim import NominatimGeocoder
from disaster_relay.enrichment.service import EnrichmentService
from disaster_relay.observability.health import HealthChecker
from disaster_relay.services.disasters import DisasterService
from disaster_relay.services.reports import ReportService
from disaster_relay.storage.memory import MemoryStore
from disaster_relay.storage.sql.repos import SqlStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a request handler or a background task may touch."""

    settings: Settings
    clock: IClock
    cache: BestEffortCache
    store: Any  # MemoryStore | SqlStore
    enrichment: EnrichmentService
    bus: RoomBus
    limiter: FixedWindowLimiter
    disasters: DisasterService
    reports: ReportService
    health: HealthChecker
    closeables: list[Any] = field(default_factory=list)
    started: bool = False
    purge_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Open connections and start the expired-entry purge.

        A cache that cannot connect degrades to misses.
        """
        if self.started:
            return
        backend = self.cache.backend
        if isinstance(backend, RedisTTLCache):
            try:
                await backend.connect()
            except Exception as exc:
                logger.warning(
                    "Redis unavailable, cache will miss: %s",
                    exc,
                    extra={"action": "cache_unavailable"},
                )
        if isinstance(self.store, SqlStore):
            await self.store.init()
        interval = self.settings.cache.purge_interval_seconds
        if interval > 0:
            self.purge_task = asyncio.create_task(
                self._purge_loop(interval), name="relay-cache-purge"
            )
        self.started = True
        logger.info(
            "Relay context started (cache=%s, storage=%s)",
            self.settings.cache.backend,
            self.settings.storage.backend,
        )

    async def stop(self) -> None:
        """Stop the purge loop, then close everything in reverse construction order."""
        if self.purge_task is not None:
            self.purge_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.purge_task
            self.purge_task = None
        for resource in reversed(self.closeables):
            try:
                await resource.close()
            except Exception:
                logger.warning("Error closing %r", resource, exc_info=True)
        self.started = False
        logger.info("Relay context stopped")

    async def purge_expired_cache(self) -> int:
        """Drop expired cache entries. Returns the number removed."""
        removed = await self.cache.purge_expired()
        if removed:
            logger.info(
                "Purged %d expired cache entries",
                removed,
                extra={"action": "cache_purged", "count": removed},
            )
        return removed

    async def _purge_loop(self, interval: float) -> None:
        while True:
            try:
                await asyncio.sleep(interval)
                await self.purge_expired_cache()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Cache purge loop error")


def _build_cache_backend(settings: Settings, clock: IClock) -> TTLCache:
    cfg = settings.cache
    if cfg.backend == "redis":
        return RedisTTLCache(cfg.redis_url, prefix=cfg.prefix)
    if cfg.backend == "memory":
        return MemoryTTLCache(clock)
    raise ConfigError(f"Unknown cache backend: {cfg.backend}")


def _build_store(settings: Settings) -> Any:
    cfg = settings.storage
    if cfg.backend == "sql":
        return SqlStore.from_url(cfg.database_url, echo=cfg.echo)
    if cfg.backend == "memory":
        return MemoryStore()
    raise ConfigError(f"Unknown storage backend: {cfg.backend}")


def build_context(
    settings: Settings | None = None,
    *,
    clock: IClock | None = None,
    cache_backend: TTLCache | None = None,
    store: Any | None = None,
    extractor: LocationExtractor | None = None,
    geocoder: Geocoder | None = None,
    image_verifier: ImageVerifier | None = None,
    official_source: OfficialUpdatesSource | None = None,
    social_source: SocialMediaSource | None = None,
) -> AppContext:
    """Wire every component from *settings*.

    Keyword arguments replace the configured component; tests use them
    to inject stub providers, a SimClock or a pre-built store.
    """
    settings = settings or Settings()
    clock = clock or WallClock()
    enrich_cfg = settings.enrichment
    closeables: list[Any] = []

    backend = cache_backend or _build_cache_backend(settings, clock)
    closeables.append(backend)
    cache = BestEffortCache(backend, op_timeout=settings.cache.op_timeout_seconds)

    store = store if store is not None else _build_store(settings)
    closeables.append(store)

    gemini: GeminiProvider | None = None
    if (extractor is None and enrich_cfg.extractor == "gemini") or (
        image_verifier is None and enrich_cfg.image_verifier == "gemini"
    ):
        gemini = GeminiProvider(
            enrich_cfg.gemini_api_key,
            model=enrich_cfg.gemini_model,
            endpoint=enrich_cfg.gemini_endpoint,
            timeout=enrich_cfg.provider_timeout_seconds,
            clock=clock,
            max_image_bytes=enrich_cfg.image_max_bytes,
        )
        closeables.append(gemini)

    if extractor is None:
        extractor = gemini if enrich_cfg.extractor == "gemini" else PatternLocationExtractor()
    if image_verifier is None:
        image_verifier = (
            gemini if enrich_cfg.image_verifier == "gemini" else HeuristicImageVerifier(clock)
        )
    if geocoder is None:
        if enrich_cfg.geocoder == "nominatim":
            nominatim = NominatimGeocoder(
                enrich_cfg.nominatim_url,
                user_agent=enrich_cfg.user_agent,
                timeout=enrich_cfg.provider_timeout_seconds,
            )
            closeables.append(nominatim)
            geocoder = nominatim
        else:
            geocoder = LookupGeocoder()

    enrichment = EnrichmentService(
        CacheAsidePipeline(cache, provider_timeout=enrich_cfg.provider_timeout_seconds),
        extractor=extractor,
        geocoder=geocoder,
        image_verifier=image_verifier,
        official_source=official_source or StaticOfficialFeed(clock),
        social_source=social_source or KeywordSocialFeed(clock),
        resource_store=store,
        config=enrich_cfg,
        clock=clock,
    )

    bus = RoomBus(send_timeout=settings.bus.send_timeout_seconds)
    limiter = FixedWindowLimiter(settings.admission, clock)
    disasters = DisasterService(store, enrichment, bus, reports=store, clock=clock)
    reports = ReportService(store, store, enrichment, bus, clock=clock)

    health = HealthChecker()

    async def _cache_check() -> tuple[bool, str]:
        ok = await cache.ping()
        return ok, "ok" if ok else "cache unreachable (serving misses)"

    async def _store_check() -> tuple[bool, str]:
        return await store.ping(), "ok"

    health.register_check("cache", _cache_check)
    health.register_check("storage", _store_check)

    return AppContext(
        settings=settings,
        clock=clock,
        cache=cache,
        store=store,
        enrichment=enrichment,
        bus=bus,
        limiter=limiter,
        disasters=disasters,
        reports=reports,
        health=health,
        closeables=closeables,
    )
