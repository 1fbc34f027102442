"""Enrichment operations: one method per enrichment kind.

Cache keys and TTLs:

========================  =======================  =====
kind                      key input                TTL
========================  =======================  =====
location_extraction       description text         1h
geocode                   location name            24h
image_verification        image URL                1h
official_updates          disaster id              1h
social_media              disaster id              1h
resources                 (not cached)             -
========================  =======================  =====

Location extraction and geocoding have no synthetic fallback: a
degraded result carries ``None`` and the disaster flow keeps going
without a derived location. Every other kind falls back to a
context-derived payload.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.config import EnrichmentConfig
from disaster_relay.core.enums import EnrichmentKind
from disaster_relay.core.ids import cache_key
from disaster_relay.core.models import (
    Coordinates,
    Disaster,
    GeocodeResult,
    ImageVerification,
    OfficialUpdate,
    Resource,
    SocialPost,
)
from disaster_relay.storage.base import ResourceStore

from . import fallbacks
from .pipeline import CacheAsidePipeline
from .providers.base import (
    Geocoder,
    ImageVerifier,
    LocationExtractor,
    OfficialUpdatesSource,
    SocialMediaSource,
)
from .result import Degraded, EnrichmentResult, Ok

logger = logging.getLogger(__name__)

K = EnrichmentKind


class EnrichmentService:
    """Owns the providers and runs each through the cache-aside pipeline."""

    def __init__(
        self,
        pipeline: CacheAsidePipeline,
        *,
        extractor: LocationExtractor,
        geocoder: Geocoder,
        image_verifier: ImageVerifier,
        official_source: OfficialUpdatesSource,
        social_source: SocialMediaSource,
        resource_store: ResourceStore | None = None,
        config: EnrichmentConfig | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._extractor = extractor
        self._geocoder = geocoder
        self._verifier = image_verifier
        self._official = official_source
        self._social = social_source
        self._resources = resource_store
        self._config = config or EnrichmentConfig()
        self._clock = clock or WallClock()

    # -- geospatial ----------------------------------------------------------

    async def extract_location(self, text: str) -> EnrichmentResult[str | None]:
        return await self._pipeline.run(
            K.LOCATION_EXTRACTION,
            cache_key(K.LOCATION_EXTRACTION.value, text),
            lambda: self._extractor.extract_location(text),
            ttl_seconds=self._config.ttl_for(K.LOCATION_EXTRACTION),
            encode=lambda loc: {"location": loc},
            decode=lambda raw: str(raw["location"]),
        )

    async def geocode(self, location: str) -> EnrichmentResult[Coordinates | None]:
        return await self._pipeline.run(
            K.GEOCODE,
            cache_key(K.GEOCODE.value, location),
            lambda: self._geocoder.geocode(location),
            ttl_seconds=self._config.ttl_for(K.GEOCODE),
            encode=lambda c: GeocodeResult(location=location, coordinates=c).model_dump(mode="json"),
            decode=lambda raw: GeocodeResult.model_validate(raw).coordinates,
        )

    # -- verification --------------------------------------------------------

    async def verify_image(self, image_url: str) -> EnrichmentResult[ImageVerification]:
        return await self._pipeline.run(
            K.IMAGE_VERIFICATION,
            cache_key(K.IMAGE_VERIFICATION.value, image_url),
            lambda: self._verifier.verify_image(image_url),
            ttl_seconds=self._config.ttl_for(K.IMAGE_VERIFICATION),
            encode=lambda v: v.model_dump(mode="json"),
            decode=ImageVerification.model_validate,
            fallback=lambda reason: fallbacks.pending_verification(self._clock.now(), reason),
        )

    # -- situational feeds ---------------------------------------------------

    async def official_updates(
        self, disaster: Disaster
    ) -> EnrichmentResult[list[OfficialUpdate]]:
        return await self._pipeline.run(
            K.OFFICIAL_UPDATES,
            cache_key(K.OFFICIAL_UPDATES.value, disaster.id),
            lambda: self._official.fetch_updates(disaster),
            ttl_seconds=self._config.ttl_for(K.OFFICIAL_UPDATES),
            encode=_dump_list,
            decode=lambda raw: [OfficialUpdate.model_validate(u) for u in raw],
            fallback=lambda _: fallbacks.contextual_updates(disaster, self._clock.now()),
        )

    async def social_media(self, disaster: Disaster) -> EnrichmentResult[list[SocialPost]]:
        return await self._pipeline.run(
            K.SOCIAL_MEDIA,
            cache_key(K.SOCIAL_MEDIA.value, disaster.id),
            lambda: self._social.fetch_posts(disaster),
            ttl_seconds=self._config.ttl_for(K.SOCIAL_MEDIA),
            encode=_dump_list,
            decode=lambda raw: [SocialPost.model_validate(p) for p in raw],
            fallback=lambda _: fallbacks.contextual_posts(disaster, self._clock.now()),
        )

    async def invalidate(self, disaster: Disaster) -> None:
        """Drop cached situational feeds after the disaster's context changed."""
        for kind in (K.OFFICIAL_UPDATES, K.SOCIAL_MEDIA):
            await self._pipeline.cache.delete(cache_key(kind.value, disaster.id))

    # -- resources -----------------------------------------------------------

    async def nearby_resources(
        self,
        disaster: Disaster,
        center: Coordinates | None = None,
        radius_km: float | None = None,
    ) -> EnrichmentResult[list[Resource]]:
        """Real nearest-neighbour query first, contextual fallback otherwise.

        An empty query result and a failing query are treated the same.
        """
        center = center or disaster.location
        radius = radius_km if radius_km is not None else self._config.resource_radius_km

        reason = "no coordinates for disaster"
        if center is not None and self._resources is not None:
            timeout = self._pipeline.provider_timeout
            try:
                found = await asyncio.wait_for(
                    self._resources.nearest_resources(
                        center, radius, limit=self._config.resource_limit
                    ),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                reason = f"geospatial query timed out after {timeout}s"
                logger.warning(
                    "Resource query timed out, falling back",
                    extra={"disaster_id": disaster.id, "timeout": timeout},
                )
            except Exception as exc:
                reason = f"geospatial query failed: {exc}"
                logger.warning(
                    "Resource query failed, falling back",
                    extra={"disaster_id": disaster.id, "error": str(exc)},
                )
            else:
                if found:
                    logger.info(
                        "Geospatial query found %d resources within %skm",
                        len(found),
                        radius,
                        extra={"disaster_id": disaster.id, "action": "resources_mapped"},
                    )
                    return Ok(found)
                reason = f"no resources within {radius}km"
        elif center is not None:
            reason = "no resource store configured"

        return Degraded(
            fallbacks.contextual_resources(disaster, center, self._clock.now()),
            reason,
        )


def _dump_list(items: list[Any]) -> list[dict[str, Any]]:
    return [i.model_dump(mode="json") for i in items]
