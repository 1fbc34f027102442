"""SQLAlchemy ORM models for disasters, reports and relief resources.

Column types are portable (JSON, Float, String) so the same schema runs
on PostgreSQL in production and SQLite in tests.

Relationships:
    DisasterRecord 1--* DisasterTagRecord  (tag filter index)
    DisasterRecord 1--* ReportRecord       (disaster_id)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""

    pass


class DisasterRecord(Base):
    """Persisted disaster.

    ``audit_trail`` is the JSON list of audit entries; it is validated on
    every load. ``deleted`` mirrors the presence of a delete entry so
    listings can filter in SQL.
    """

    __tablename__ = "disasters"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_name: Mapped[str] = mapped_column(String(255), default="Unknown")
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    audit_trail: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )

    __table_args__ = (
        Index("ix_disasters_owner", "owner_id"),
        Index("ix_disasters_created", "created_at"),
    )


class DisasterTagRecord(Base):
    __tablename__ = "disaster_tags"

    disaster_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("disasters.id", ondelete="CASCADE"), primary_key=True,
    )
    tag: Mapped[str] = mapped_column(String(64), primary_key=True)

    __table_args__ = (Index("ix_disaster_tags_tag", "tag"),)


class ReportRecord(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    disaster_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("disasters.id"), nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_status: Mapped[str] = mapped_column(String(16), default="pending")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )

    __table_args__ = (
        Index("ix_reports_disaster", "disaster_id"),
        Index("ix_reports_user", "user_id"),
    )


class ResourceRecord(Base):
    __tablename__ = "resources"

    id: Mapped[str] = mapped_column(String(96), primary_key=True)
    disaster_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location_name: Mapped[str] = mapped_column(String(255), default="")
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(32), default="operational")
    contact: Mapped[str] = mapped_column(String(64), default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False,
    )

    __table_args__ = (Index("ix_resources_lat_lng", "lat", "lng"),)
