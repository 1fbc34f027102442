"""External enrichment providers and their built-in deterministic stand-ins."""

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

__all__ = [
    "GeminiProvider",
    "Geocoder",
    "HeuristicImageVerifier",
    "ImageVerifier",
    "KeywordSocialFeed",
    "LocationExtractor",
    "LookupGeocoder",
    "NominatimGeocoder",
    "OfficialUpdatesSource",
    "PatternLocationExtractor",
    "SocialMediaSource",
    "StaticOfficialFeed",
]
