"""Core domain models used across the disaster relay.

These are the canonical "truth models" for the system. Stores, services,
the HTTP layer and the fan-out payloads all use these same types.

Enrichment payloads are one explicit model per enrichment kind rather
than open-ended dicts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import (
    AuditAction,
    Platform,
    Priority,
    ResourceType,
    VerificationStatus,
)
from .ids import new_id, utc_now


# ---------------------------------------------------------------------------
# Geography
# ---------------------------------------------------------------------------

class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

class FieldChange(BaseModel):
    """``{from, to}`` pair for one changed field."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: Any = Field(default=None, alias="from")
    to: Any = None


class AuditEntry(BaseModel):
    """Single immutable entry in an entity's audit trail."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: AuditAction
    user_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    changes: dict[str, FieldChange] | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Disasters and reports
# ---------------------------------------------------------------------------

class Disaster(BaseModel):
    """A disaster record with best-effort derived location fields."""

    id: str = Field(default_factory=new_id)
    title: str
    description: str
    location_name: str = "Unknown"
    location: Coordinates | None = None  # Derived; may be absent
    tags: list[str] = Field(default_factory=list)
    owner_id: str
    created_at: datetime = Field(default_factory=utc_now)
    audit_trail: tuple[AuditEntry, ...] = ()

    @property
    def is_deleted(self) -> bool:
        return any(e.action == AuditAction.DELETE for e in self.audit_trail)

    def to_public(self) -> dict[str, Any]:
        """JSON-ready dict with ``from`` keys in audit changes."""
        return self.model_dump(mode="json", by_alias=True)


class Report(BaseModel):
    id: str = Field(default_factory=new_id)
    disaster_id: str
    user_id: str
    content: str
    image_url: str | None = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)


class Resource(BaseModel):
    """A relief resource (shelter, food, medical...) near a disaster."""

    id: str = Field(default_factory=new_id)
    disaster_id: str
    name: str
    location_name: str
    location: Coordinates
    type: ResourceType
    capacity: int = 0
    status: str = "operational"
    contact: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    distance_km: float | None = None


# ---------------------------------------------------------------------------
# Enrichment payloads (one schema per kind)
# ---------------------------------------------------------------------------

class GeocodeResult(BaseModel):
    location: str
    coordinates: Coordinates


class MetadataAnalysis(BaseModel):
    timestamp_consistent: bool = False
    location_data_available: bool = False
    camera_info: str = "Unknown"


class ImageAnalysis(BaseModel):
    authenticity_score: float = 0.0
    context_relevance: float = 0.0
    manipulation_detected: bool = False
    metadata_analysis: MetadataAnalysis = Field(default_factory=MetadataAnalysis)


class ImageVerification(BaseModel):
    status: VerificationStatus
    confidence: float = Field(ge=0.0, le=1.0)
    verification_result: str = ""
    analysis: ImageAnalysis = Field(default_factory=ImageAnalysis)
    processing_time_ms: int = 0
    timestamp: datetime = Field(default_factory=utc_now)


class OfficialUpdate(BaseModel):
    source: str
    title: str
    content: str
    url: str | None = None
    timestamp: datetime
    priority: Priority = Priority.MEDIUM


class SocialPost(BaseModel):
    user: str
    content: str
    timestamp: datetime
    priority: bool = False
    platform: Platform = Platform.TWITTER
    engagement: int = 0
