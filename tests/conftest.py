"""Shared fixtures for the disaster-relay test suite."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from disaster_relay.bus.rooms import RoomBus
from disaster_relay.cache.memory import MemoryTTLCache
from disaster_relay.cache.safe import BestEffortCache
from disaster_relay.core.clock import SimClock
from disaster_relay.core.models import Coordinates, Disaster, ImageVerification
from disaster_relay.core.scheduler import ManualScheduler
from disaster_relay.enrichment.pipeline import CacheAsidePipeline
from disaster_relay.enrichment.providers.builtin import (
    HeuristicImageVerifier,
    KeywordSocialFeed,
    LookupGeocoder,
    PatternLocationExtractor,
    StaticOfficialFeed,
)
from disaster_relay.enrichment.service import EnrichmentService
from disaster_relay.services.disasters import DisasterService
from disaster_relay.services.reports import ReportService
from disaster_relay.storage.memory import MemoryStore


# ---------------------------------------------------------------------------
# Stub providers
# ---------------------------------------------------------------------------

class CountingGeocoder:
    """Returns fixed coordinates and counts calls."""

    def __init__(self, answers: dict[str, Coordinates] | None = None) -> None:
        self.answers = answers or {"Miami, FL": Coordinates(lat=25.7617, lng=-80.1918)}
        self.calls: list[str] = []

    async def geocode(self, location: str) -> Coordinates | None:
        self.calls.append(location)
        return self.answers.get(location)


class FailingProvider:
    """Every call raises; stands in for any provider during an outage."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or ConnectionError("provider unreachable")
        self.calls = 0

    async def _fail(self, *args: Any) -> Any:
        self.calls += 1
        raise self.error

    extract_location = _fail
    geocode = _fail
    verify_image = _fail
    fetch_updates = _fail
    fetch_posts = _fail


class StaticVerifier:
    def __init__(self, verification: ImageVerification) -> None:
        self.verification = verification
        self.calls = 0

    async def verify_image(self, image_url: str) -> ImageVerification:
        self.calls += 1
        return self.verification


class RecordingSubscriber:
    """In-memory bus subscriber."""

    def __init__(self, sub_id: str, fail: bool = False) -> None:
        self.id = sub_id
        self.fail = fail
        self.received: list[tuple[str, Any]] = []

    async def send(self, topic: str, payload: Any) -> None:
        if self.fail:
            raise ConnectionResetError(f"{self.id} went away")
        self.received.append((topic, payload))


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

@pytest.fixture
def sim_clock() -> SimClock:
    return SimClock(start=datetime(2024, 6, 1, tzinfo=timezone.utc))


@pytest.fixture
def scheduler(sim_clock: SimClock) -> ManualScheduler:
    return ManualScheduler(sim_clock)


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_cache(sim_clock: SimClock) -> MemoryTTLCache:
    return MemoryTTLCache(sim_clock)


@pytest.fixture
def cache(memory_cache: MemoryTTLCache) -> BestEffortCache:
    return BestEffortCache(memory_cache)


@pytest.fixture
def pipeline(cache: BestEffortCache) -> CacheAsidePipeline:
    return CacheAsidePipeline(cache, provider_timeout=1.0)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def bus() -> RoomBus:
    return RoomBus(send_timeout=0.5)


@pytest.fixture
def geocoder() -> CountingGeocoder:
    return CountingGeocoder()


@pytest.fixture
def enrichment(
    pipeline: CacheAsidePipeline,
    store: MemoryStore,
    geocoder: CountingGeocoder,
    sim_clock: SimClock,
) -> EnrichmentService:
    return EnrichmentService(
        pipeline,
        extractor=PatternLocationExtractor(),
        geocoder=geocoder,
        image_verifier=HeuristicImageVerifier(sim_clock),
        official_source=StaticOfficialFeed(sim_clock),
        social_source=KeywordSocialFeed(sim_clock),
        resource_store=store,
        clock=sim_clock,
    )


@pytest.fixture
def disaster_service(
    store: MemoryStore,
    enrichment: EnrichmentService,
    bus: RoomBus,
    sim_clock: SimClock,
) -> DisasterService:
    return DisasterService(store, enrichment, bus, reports=store, clock=sim_clock)


@pytest.fixture
def report_service(
    store: MemoryStore,
    enrichment: EnrichmentService,
    bus: RoomBus,
    sim_clock: SimClock,
) -> ReportService:
    return ReportService(store, store, enrichment, bus, clock=sim_clock)


@pytest.fixture
def sample_disaster(sim_clock: SimClock) -> Disaster:
    return Disaster(
        id="d-1",
        title="NYC Flood",
        description="Heavy flooding in Manhattan",
        location_name="Manhattan, NYC",
        location=Coordinates(lat=40.7831, lng=-73.9712),
        tags=["flood", "urgent"],
        owner_id="netrunnerX",
        created_at=sim_clock.now(),
    )
