"""Enumerations used across the disaster relay."""

from enum import Enum


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class EnrichmentKind(str, Enum):
    LOCATION_EXTRACTION = "location_extraction"
    GEOCODE = "geocode"
    IMAGE_VERIFICATION = "image_verification"
    OFFICIAL_UPDATES = "official_updates"
    SOCIAL_MEDIA = "social_media"
    RESOURCES = "resources"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ResourceType(str, Enum):
    SHELTER = "shelter"
    FOOD = "food"
    MEDICAL = "medical"
    SUPPLIES = "supplies"
    ANIMAL_CARE = "animal_care"


class Platform(str, Enum):
    TWITTER = "twitter"
    BLUESKY = "bluesky"


class Tier(str, Enum):
    """Rate admission tier."""

    GENERAL = "general"
    STRICT = "strict"  # Resource-intensive reads
    AI = "ai"  # Enrichment-triggering writes


class Topic(str, Enum):
    """Fan-out event topics."""

    DISASTER_UPDATED = "disaster_updated"  # global
    DISASTER_DELETED = "disaster_deleted"  # global
    REPORT_CREATED = "report_created"
    SOCIAL_MEDIA_UPDATED = "social_media_updated"
    RESOURCES_UPDATED = "resources_updated"
