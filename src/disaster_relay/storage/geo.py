"""Great-circle helpers for nearest-within-radius queries."""

from __future__ import annotations

import math

from disaster_relay.core.models import Coordinates

EARTH_RADIUS_KM = 6371.0088
KM_PER_DEG_LAT = 111.32


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlng = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def bounding_box(center: Coordinates, radius_km: float) -> tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) enclosing the radius.

    Used as a cheap index-friendly prefilter before the exact distance.
    """
    dlat = radius_km / KM_PER_DEG_LAT
    cos_lat = max(math.cos(math.radians(center.lat)), 1e-6)
    dlng = min(180.0, radius_km / (KM_PER_DEG_LAT * cos_lat))
    return (
        max(-90.0, center.lat - dlat),
        min(90.0, center.lat + dlat),
        center.lng - dlng,
        center.lng + dlng,
    )


def longitude_ranges(min_lng: float, max_lng: float) -> list[tuple[float, float]]:
    """Split an unwrapped longitude span into ranges within [-180, 180].

    A span crossing the antimeridian becomes two ranges. An empty list
    means every longitude qualifies (the span covers the whole circle,
    which happens near the poles).
    """
    if max_lng - min_lng >= 360.0:
        return []
    if min_lng < -180.0:
        return [(min_lng + 360.0, 180.0), (-180.0, max_lng)]
    if max_lng > 180.0:
        return [(min_lng, 180.0), (-180.0, max_lng - 360.0)]
    return [(min_lng, max_lng)]
