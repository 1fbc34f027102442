"""Request and response bodies for the HTTP surface."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from disaster_relay.core.models import Coordinates
from disaster_relay.storage.base import Page


def _http_url(value: str | None) -> str | None:
    if value is not None and not value.lower().startswith(("http://", "https://")):
        raise ValueError("Valid image URL required")
    return value


# ---------------------------------------------------------------------------
# Disasters
# ---------------------------------------------------------------------------

class DisasterCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    owner_id: str = Field(min_length=1)
    location_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class DisasterUpdate(BaseModel):
    user_id: str = Field(min_length=1)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, min_length=1)
    location_name: str | None = None
    tags: list[str] | None = None


class DisasterDelete(BaseModel):
    user_id: str = Field(min_length=1)
    reason: str = "User requested deletion"


class VerifyImageRequest(BaseModel):
    image_url: str
    report_id: str | None = None

    @field_validator("image_url")
    @classmethod
    def check_url(cls, value: str | None) -> str | None:
        return _http_url(value)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

class ReportCreate(BaseModel):
    disaster_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    content: str = Field(min_length=1, max_length=2000)
    image_url: str | None = None

    @field_validator("image_url")
    @classmethod
    def check_url(cls, value: str | None) -> str | None:
        return _http_url(value)


# ---------------------------------------------------------------------------
# Stand-alone enrichment
# ---------------------------------------------------------------------------

class GeocodeRequest(BaseModel):
    location: str = Field(min_length=1)


class GeocodeResponse(BaseModel):
    location: str
    coordinates: Coordinates | None
    formatted_address: str
    confidence: float
    timestamp: datetime


class ExtractLocationRequest(BaseModel):
    description: str = Field(min_length=1)


class ExtractLocationResponse(BaseModel):
    description: str
    location: str
    confidence: float
    extraction_method: str
    timestamp: datetime


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

def list_envelope(page: Page[Any], dump: Any) -> dict[str, Any]:
    return {
        "data": [dump(item) for item in page.items],
        "count": page.total,
        "pagination": {
            "limit": page.limit,
            "offset": page.offset,
            "hasMore": page.has_more,
        },
    }
