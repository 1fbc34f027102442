"""Cache-aside enrichment pipeline with deterministic fallback."""

from disaster_relay.enrichment.pipeline import CacheAsidePipeline
from disaster_relay.enrichment.result import Degraded, EnrichmentResult, Fatal, Ok
from disaster_relay.enrichment.service import EnrichmentService

__all__ = [
    "CacheAsidePipeline",
    "Degraded",
    "EnrichmentResult",
    "EnrichmentService",
    "Fatal",
    "Ok",
]
