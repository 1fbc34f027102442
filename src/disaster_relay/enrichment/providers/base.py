"""Provider interfaces for external enrichment services.

Every provider may raise, hang, or return an empty/low-confidence result;
the pipeline treats all of these the same way.
"""

from __future__ import annotations

from typing import Protocol

from disaster_relay.core.models import (
    Coordinates,
    Disaster,
    ImageVerification,
    OfficialUpdate,
    SocialPost,
)


class LocationExtractor(Protocol):
    async def extract_location(self, text: str) -> str | None:
        """Return a place name found in *text*, or None."""
        ...


class Geocoder(Protocol):
    async def geocode(self, location: str) -> Coordinates | None:
        ...


class ImageVerifier(Protocol):
    async def verify_image(self, image_url: str) -> ImageVerification:
        ...


class OfficialUpdatesSource(Protocol):
    async def fetch_updates(self, disaster: Disaster) -> list[OfficialUpdate]:
        ...


class SocialMediaSource(Protocol):
    async def fetch_posts(self, disaster: Disaster) -> list[SocialPost]:
        ...
