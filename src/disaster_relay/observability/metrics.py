"""Prometheus metrics.

Exposed by the API at ``/metrics``.
"""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

# ---------------------------------------------------------------------------
# System metrics
# ---------------------------------------------------------------------------

SYSTEM_INFO = Info("relay_system", "Disaster relay information")

# ---------------------------------------------------------------------------
# Cache metrics
# ---------------------------------------------------------------------------

CACHE_LOOKUPS = Counter(
    "relay_cache_lookups_total",
    "Cache lookups by kind and result",
    ["kind", "result"],  # result: hit | miss
)

CACHE_ERRORS = Counter(
    "relay_cache_errors_total",
    "Cache backend failures (treated as misses)",
    ["operation"],
)

# ---------------------------------------------------------------------------
# Enrichment metrics
# ---------------------------------------------------------------------------

ENRICHMENT_OUTCOMES = Counter(
    "relay_enrichment_outcomes_total",
    "Enrichment results by kind and outcome",
    ["kind", "outcome"],  # outcome: ok | cached | degraded | fatal
)

PROVIDER_LATENCY = Histogram(
    "relay_provider_latency_seconds",
    "External provider call latency",
    ["kind"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Fan-out metrics
# ---------------------------------------------------------------------------

BUS_DELIVERIES = Counter(
    "relay_bus_deliveries_total",
    "Events delivered to subscribers",
    ["topic"],
)

BUS_DELIVERY_ERRORS = Counter(
    "relay_bus_delivery_errors_total",
    "Failed deliveries to subscribers",
    ["topic"],
)

ACTIVE_ROOMS = Gauge(
    "relay_active_rooms",
    "Rooms with at least one member",
)

CONNECTED_SUBSCRIBERS = Gauge(
    "relay_connected_subscribers",
    "Open subscriber connections",
)

# ---------------------------------------------------------------------------
# Admission metrics
# ---------------------------------------------------------------------------

ADMISSION_REJECTIONS = Counter(
    "relay_admission_rejections_total",
    "Requests rejected by rate admission",
    ["tier"],
)


def set_system_info(version: str, environment: str) -> None:
    SYSTEM_INFO.info({"version": version, "environment": environment})


def render_latest() -> tuple[bytes, str]:
    """Return the current exposition payload and its content type."""
    return generate_latest(), CONTENT_TYPE_LATEST


# ---------------------------------------------------------------------------
# Convenience helpers
# ---------------------------------------------------------------------------


def record_cache_lookup(kind: str, hit: bool) -> None:
    CACHE_LOOKUPS.labels(kind=kind, result="hit" if hit else "miss").inc()


def record_cache_error(operation: str) -> None:
    CACHE_ERRORS.labels(operation=operation).inc()


def record_enrichment(kind: str, outcome: str) -> None:
    ENRICHMENT_OUTCOMES.labels(kind=kind, outcome=outcome).inc()


def record_provider_latency(kind: str, seconds: float) -> None:
    PROVIDER_LATENCY.labels(kind=kind).observe(seconds)


def record_delivery(topic: str, ok: bool) -> None:
    if ok:
        BUS_DELIVERIES.labels(topic=topic).inc()
    else:
        BUS_DELIVERY_ERRORS.labels(topic=topic).inc()


def update_active_rooms(count: int) -> None:
    ACTIVE_ROOMS.set(count)


def update_connected_subscribers(count: int) -> None:
    CONNECTED_SUBSCRIBERS.set(count)


def record_admission_rejection(tier: str) -> None:
    ADMISSION_REJECTIONS.labels(tier=tier).inc()
