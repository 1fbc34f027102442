"""Deterministic, context-derived fallback payloads.

When a provider fails, the pipeline still has to hand the caller
something plausible. Each generator folds the disaster's own title, tags
and location name into the synthetic payload, and every pseudo-random
field is seeded from the disaster id, so two calls for the same disaster
produce the same fallback.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from disaster_relay.core.enums import (
    Platform,
    Priority,
    ResourceType,
    VerificationStatus,
)
from disaster_relay.core.ids import content_hash
from disaster_relay.core.models import (
    Coordinates,
    Disaster,
    ImageVerification,
    OfficialUpdate,
    Resource,
    SocialPost,
)

# Used when neither the caller nor the disaster has coordinates.
DEFAULT_CENTER = Coordinates(lat=40.7831, lng=-73.9712)


def _rng(*parts: str) -> random.Random:
    return random.Random(int(content_hash(*parts, length=16), 16))


def _place(disaster: Disaster, default: str = "Affected Area") -> str:
    name = (disaster.location_name or "").strip()
    return name if name and name.lower() not in ("unknown", "unknown location") else default


def _primary_tag(disaster: Disaster, default: str) -> str:
    return disaster.tags[0] if disaster.tags else default


def pending_verification(now: datetime, reason: str = "") -> ImageVerification:
    """Verification placeholder used when the verifier is unavailable."""
    return ImageVerification(
        status=VerificationStatus.PENDING,
        confidence=0.0,
        verification_result=(
            "Automated verification unavailable - manual review required"
            + (f" ({reason})" if reason else "")
        ),
        timestamp=now,
    )


def contextual_updates(disaster: Disaster, now: datetime) -> list[OfficialUpdate]:
    place = _place(disaster)
    title = disaster.title or "Disaster Event"
    hazard = _primary_tag(disaster, "severe weather")
    return [
        OfficialUpdate(
            source="FEMA",
            title=f"Emergency Declaration for {place}",
            content=(
                f"Federal emergency assistance has been authorized for {place} "
                f"following {title}. Residents are advised to follow evacuation "
                "orders and register for assistance."
            ),
            url="https://www.fema.gov/disaster-declarations",
            timestamp=now - timedelta(hours=2),
            priority=Priority.HIGH,
        ),
        OfficialUpdate(
            source="Red Cross",
            title="Emergency Shelter Operations",
            content=(
                f"The American Red Cross has opened emergency shelters in the "
                f"{place} area. Shelter locations and capacity information "
                "available 24/7. Pet-friendly options available."
            ),
            url="https://www.redcross.org/get-help/disaster-relief-and-recovery-services",
            timestamp=now - timedelta(hours=3),
            priority=Priority.MEDIUM,
        ),
        OfficialUpdate(
            source="Local Emergency Management",
            title="Evacuation Routes Updated",
            content=(
                f"Updated evacuation routes for {place} residents. Please use "
                "designated routes only. Emergency services are prioritizing "
                "these corridors for response vehicles."
            ),
            url=None,
            timestamp=now - timedelta(hours=4),
            priority=Priority.HIGH,
        ),
        OfficialUpdate(
            source="National Weather Service",
            title="Weather Advisory",
            content=(
                f"Continued monitoring of conditions in {place}. Additional "
                f"{hazard} possible in the next 24-48 hours. Stay informed "
                "through official channels."
            ),
            url="https://www.weather.gov",
            timestamp=now - timedelta(hours=5),
            priority=Priority.MEDIUM,
        ),
    ]


def contextual_posts(disaster: Disaster, now: datetime) -> list[SocialPost]:
    place = _place(disaster)
    tag = _primary_tag(disaster, "disaster")
    urgent = "urgent" in (t.lower() for t in disaster.tags)
    rng = _rng(disaster.id, "social")
    return [
        SocialPost(
            user="citizen1",
            content=f"#{tag}relief Need food and water in {place}",
            timestamp=now - timedelta(minutes=30),
            priority=urgent,
            platform=Platform.TWITTER,
            engagement=rng.randint(10, 109),
        ),
        SocialPost(
            user="volunteer_help",
            content=(
                f"Offering shelter for families affected by {disaster.title}. "
                "Contact me for details. #DisasterRelief"
            ),
            timestamp=now - timedelta(minutes=45),
            priority=False,
            platform=Platform.TWITTER,
            engagement=rng.randint(5, 54),
        ),
        SocialPost(
            user="local_news",
            content=(
                f"URGENT: {disaster.title} - Emergency services are responding. "
                "Avoid the area. #BreakingNews"
            ),
            timestamp=now - timedelta(minutes=60),
            priority=True,
            platform=Platform.TWITTER,
            engagement=rng.randint(50, 249),
        ),
        SocialPost(
            user="relief_org",
            content=(
                f"We're setting up emergency supplies distribution at {place}. "
                f"#{tag}relief #EmergencyAid"
            ),
            timestamp=now - timedelta(minutes=90),
            priority=False,
            platform=Platform.BLUESKY,
            engagement=rng.randint(15, 89),
        ),
        SocialPost(
            user="emergency_services",
            content=(
                f"Emergency response teams deployed to {place}. Please follow "
                "evacuation orders if issued."
            ),
            timestamp=now - timedelta(minutes=120),
            priority=True,
            platform=Platform.TWITTER,
            engagement=rng.randint(100, 399),
        ),
    ]


# (name, site, type, capacity range, contact)
_RESOURCE_TEMPLATES: list[tuple[str, str, ResourceType, tuple[int, int], str]] = [
    ("Red Cross Emergency Shelter", "Community Center", ResourceType.SHELTER, (50, 249), "+1-800-RED-CROSS"),
    ("Emergency Food Distribution", "City Park", ResourceType.FOOD, (100, 599), "+1-800-FOOD-AID"),
    ("Mobile Medical Unit", "Main Street", ResourceType.MEDICAL, (10, 59), "+1-800-MED-HELP"),
    ("Emergency Supply Station", "Shopping Center", ResourceType.SUPPLIES, (200, 1199), "+1-800-SUPPLIES"),
    ("Pet Rescue Center", "Animal Shelter", ResourceType.ANIMAL_CARE, (25, 124), "+1-800-PET-HELP"),
]


def contextual_resources(
    disaster: Disaster,
    center: Coordinates | None,
    now: datetime,
) -> list[Resource]:
    """Relief resources scattered within ~1 km of *center*."""
    base = center or disaster.location or DEFAULT_CENTER
    place = _place(disaster, default="Downtown Area")
    rng = _rng(disaster.id, "resources")

    resources = []
    for i, (name, site, rtype, (lo, hi), contact) in enumerate(_RESOURCE_TEMPLATES, start=1):
        resources.append(
            Resource(
                id=f"{disaster.id}-resource-{i}",
                disaster_id=disaster.id,
                name=name,
                location_name=f"{site}, {place}",
                location=Coordinates(
                    lat=round(max(-90.0, min(90.0, base.lat + (rng.random() - 0.5) * 0.02)), 6),
                    lng=round(max(-180.0, min(180.0, base.lng + (rng.random() - 0.5) * 0.02)), 6),
                ),
                type=rtype,
                capacity=rng.randint(lo, hi),
                status="operational",
                contact=contact,
                created_at=now,
                distance_km=round(1 + rng.random() * 5, 2),
            )
        )
    return resources
