"""SQL-backed store.

Conversion helpers translate between the pydantic domain models in
:mod:`disaster_relay.core.models` and the ORM records in
:mod:`.models`. Every public method runs in its own session scope.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from disaster_relay.audit.trail import dump_trail, ensure_extends, load_trail
from disaster_relay.core.enums import ResourceType, VerificationStatus
from disaster_relay.core.errors import NotFoundError
from disaster_relay.core.models import Coordinates, Disaster, Report, Resource

from ..base import Page
from ..geo import bounding_box, haversine_km, longitude_ranges
from .connection import create_all, create_engine, session_factory, session_scope
from .models import DisasterRecord, DisasterTagRecord, ReportRecord, ResourceRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------


def _aware(ts: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _coords(lat: float | None, lng: float | None) -> Coordinates | None:
    if lat is None or lng is None:
        return None
    return Coordinates(lat=lat, lng=lng)


def _apply_disaster(record: DisasterRecord, disaster: Disaster) -> None:
    record.title = disaster.title
    record.description = disaster.description
    record.location_name = disaster.location_name
    record.lat = disaster.location.lat if disaster.location else None
    record.lng = disaster.location.lng if disaster.location else None
    record.tags = list(disaster.tags)
    record.owner_id = disaster.owner_id
    record.audit_trail = dump_trail(disaster.audit_trail)
    record.deleted = disaster.is_deleted


def _disaster_to_record(disaster: Disaster) -> DisasterRecord:
    record = DisasterRecord(id=disaster.id, created_at=disaster.created_at)
    _apply_disaster(record, disaster)
    return record


def _record_to_disaster(record: DisasterRecord) -> Disaster:
    return Disaster(
        id=record.id,
        title=record.title,
        description=record.description,
        location_name=record.location_name,
        location=_coords(record.lat, record.lng),
        tags=list(record.tags or []),
        owner_id=record.owner_id,
        created_at=_aware(record.created_at),
        audit_trail=load_trail(record.audit_trail),
    )


def _tag_rows(disaster: Disaster) -> list[DisasterTagRecord]:
    return [DisasterTagRecord(disaster_id=disaster.id, tag=t) for t in sorted(set(disaster.tags))]


def _report_to_record(report: Report) -> ReportRecord:
    return ReportRecord(
        id=report.id,
        disaster_id=report.disaster_id,
        user_id=report.user_id,
        content=report.content,
        image_url=report.image_url,
        verification_status=report.verification_status.value,
        created_at=report.created_at,
    )


def _record_to_report(record: ReportRecord) -> Report:
    return Report(
        id=record.id,
        disaster_id=record.disaster_id,
        user_id=record.user_id,
        content=record.content,
        image_url=record.image_url,
        verification_status=VerificationStatus(record.verification_status),
        created_at=_aware(record.created_at),
    )


def _resource_to_record(resource: Resource) -> ResourceRecord:
    return ResourceRecord(
        id=resource.id,
        disaster_id=resource.disaster_id,
        name=resource.name,
        location_name=resource.location_name,
        lat=resource.location.lat,
        lng=resource.location.lng,
        type=resource.type.value,
        capacity=resource.capacity,
        status=resource.status,
        contact=resource.contact,
        created_at=resource.created_at,
    )


def _record_to_resource(record: ResourceRecord, distance_km: float | None = None) -> Resource:
    return Resource(
        id=record.id,
        disaster_id=record.disaster_id,
        name=record.name,
        location_name=record.location_name,
        location=Coordinates(lat=record.lat, lng=record.lng),
        type=ResourceType(record.type),
        capacity=record.capacity,
        status=record.status,
        contact=record.contact,
        created_at=_aware(record.created_at),
        distance_km=distance_km,
    )


async def _page(session: AsyncSession, stmt: Any, limit: int, offset: int) -> tuple[list, int]:
    total = await session.scalar(select(func.count()).select_from(stmt.subquery()))
    rows = (await session.scalars(stmt.limit(limit).offset(offset))).all()
    return list(rows), int(total or 0)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqlStore:
    """Implements the disaster, report and resource store protocols.

    Usage::

        store = SqlStore.from_url("sqlite+aiosqlite:///relay.db")
        await store.init()
        ...
        await store.close()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self._engine = engine
        self._factory = factory or session_factory(engine)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> SqlStore:
        return cls(create_engine(url, echo=echo))

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def init(self) -> None:
        await create_all(self._engine)

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed.")

    async def ping(self) -> bool:
        async with session_scope(self._factory) as session:
            await session.scalar(select(1))
        return True

    # -- disasters -----------------------------------------------------------

    async def insert_disaster(self, disaster: Disaster) -> Disaster:
        async with session_scope(self._factory) as session:
            session.add(_disaster_to_record(disaster))
            await session.flush()
            session.add_all(_tag_rows(disaster))
        return disaster

    async def get_disaster(self, disaster_id: str) -> Disaster | None:
        async with session_scope(self._factory) as session:
            record = await session.get(DisasterRecord, disaster_id)
            return _record_to_disaster(record) if record is not None else None

    async def update_disaster(self, disaster: Disaster) -> Disaster:
        """Persist *disaster*; its trail must extend the stored trail.

        Raises:
            NotFoundError: No row with this id.
            AuditCorruptedError: The stored trail is malformed or the
                proposed trail does not extend it.
        """
        async with session_scope(self._factory) as session:
            record = await session.get(DisasterRecord, disaster.id, with_for_update=True)
            if record is None:
                raise NotFoundError("Disaster", disaster.id)
            ensure_extends(load_trail(record.audit_trail), disaster.audit_trail)
            _apply_disaster(record, disaster)
            await session.execute(
                delete(DisasterTagRecord).where(DisasterTagRecord.disaster_id == disaster.id)
            )
            session.add_all(_tag_rows(disaster))
        return disaster

    async def list_disasters(
        self,
        *,
        tag: str | None = None,
        owner_id: str | None = None,
        include_deleted: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[Disaster]:
        stmt = select(DisasterRecord)
        if tag is not None:
            stmt = stmt.where(
                DisasterRecord.id.in_(
                    select(DisasterTagRecord.disaster_id).where(DisasterTagRecord.tag == tag)
                )
            )
        if owner_id is not None:
            stmt = stmt.where(DisasterRecord.owner_id == owner_id)
        if not include_deleted:
            stmt = stmt.where(DisasterRecord.deleted.is_(False))
        stmt = stmt.order_by(DisasterRecord.created_at.desc(), DisasterRecord.id)

        async with session_scope(self._factory) as session:
            rows, total = await _page(session, stmt, limit, offset)
            return Page([_record_to_disaster(r) for r in rows], total, limit, offset)

    # -- reports -------------------------------------------------------------

    async def insert_report(self, report: Report) -> Report:
        async with session_scope(self._factory) as session:
            session.add(_report_to_record(report))
        return report

    async def get_report(self, report_id: str) -> Report | None:
        async with session_scope(self._factory) as session:
            record = await session.get(ReportRecord, report_id)
            return _record_to_report(record) if record is not None else None

    async def set_verification_status(
        self, report_id: str, status: VerificationStatus
    ) -> Report | None:
        async with session_scope(self._factory) as session:
            record = await session.get(ReportRecord, report_id)
            if record is None:
                return None
            record.verification_status = status.value
            return _record_to_report(record)

    async def list_reports(
        self,
        *,
        disaster_id: str | None = None,
        user_id: str | None = None,
        verification_status: VerificationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[Report]:
        stmt = select(ReportRecord)
        if disaster_id is not None:
            stmt = stmt.where(ReportRecord.disaster_id == disaster_id)
        if user_id is not None:
            stmt = stmt.where(ReportRecord.user_id == user_id)
        if verification_status is not None:
            stmt = stmt.where(ReportRecord.verification_status == verification_status.value)
        stmt = stmt.order_by(ReportRecord.created_at.desc(), ReportRecord.id)

        async with session_scope(self._factory) as session:
            rows, total = await _page(session, stmt, limit, offset)
            return Page([_record_to_report(r) for r in rows], total, limit, offset)

    # -- resources -----------------------------------------------------------

    async def add_resource(self, resource: Resource) -> Resource:
        async with session_scope(self._factory) as session:
            await session.merge(_resource_to_record(resource))
        return resource

    async def nearest_resources(
        self, center: Coordinates, radius_km: float, limit: int = 20
    ) -> list[Resource]:
        """Bounding-box prefilter in SQL, exact haversine distance in Python."""
        min_lat, max_lat, min_lng, max_lng = bounding_box(center, radius_km)
        stmt = select(ResourceRecord).where(ResourceRecord.lat.between(min_lat, max_lat))
        ranges = longitude_ranges(min_lng, max_lng)
        if ranges:
            stmt = stmt.where(or_(*(ResourceRecord.lng.between(lo, hi) for lo, hi in ranges)))
        async with session_scope(self._factory) as session:
            records = (await session.scalars(stmt)).all()

        hits: list[Resource] = []
        for record in records:
            d = haversine_km(center, Coordinates(lat=record.lat, lng=record.lng))
            if d <= radius_km:
                hits.append(_record_to_resource(record, round(d, 3)))
        hits.sort(key=lambda r: r.distance_km or 0.0)
        return hits[:limit]
