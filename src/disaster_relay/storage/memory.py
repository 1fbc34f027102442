"""In-memory store for tests and single-process deployments.

No external dependencies. Implements the disaster, report and resource
protocols of :mod:`disaster_relay.storage.base`.
"""

from __future__ import annotations

import logging

from disaster_relay.audit.trail import ensure_extends
from disaster_relay.core.enums import VerificationStatus
from disaster_relay.core.errors import NotFoundError
from disaster_relay.core.models import Coordinates, Disaster, Report, Resource

from .base import Page
from .geo import haversine_km

logger = logging.getLogger(__name__)


class MemoryStore:
    """Dict-backed store. Safe within a single asyncio event loop."""

    def __init__(self) -> None:
        self._disasters: dict[str, Disaster] = {}
        self._reports: dict[str, Report] = {}
        self._resources: dict[str, Resource] = {}

    # -- disasters -----------------------------------------------------------

    async def insert_disaster(self, disaster: Disaster) -> Disaster:
        if disaster.id in self._disasters:
            raise ValueError(f"Duplicate disaster id {disaster.id}")
        self._disasters[disaster.id] = disaster
        return disaster

    async def get_disaster(self, disaster_id: str) -> Disaster | None:
        return self._disasters.get(disaster_id)

    async def update_disaster(self, disaster: Disaster) -> Disaster:
        stored = self._disasters.get(disaster.id)
        if stored is None:
            raise NotFoundError("Disaster", disaster.id)
        ensure_extends(stored.audit_trail, disaster.audit_trail)
        self._disasters[disaster.id] = disaster
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
        rows = [
            d
            for d in self._disasters.values()
            if (tag is None or tag in d.tags)
            and (owner_id is None or d.owner_id == owner_id)
            and (include_deleted or not d.is_deleted)
        ]
        rows.sort(key=lambda d: d.created_at, reverse=True)
        return Page(rows[offset : offset + limit], len(rows), limit, offset)

    # -- reports -------------------------------------------------------------

    async def insert_report(self, report: Report) -> Report:
        self._reports[report.id] = report
        return report

    async def get_report(self, report_id: str) -> Report | None:
        return self._reports.get(report_id)

    async def set_verification_status(
        self, report_id: str, status: VerificationStatus
    ) -> Report | None:
        report = self._reports.get(report_id)
        if report is None:
            return None
        updated = report.model_copy(update={"verification_status": status})
        self._reports[report_id] = updated
        return updated

    async def list_reports(
        self,
        *,
        disaster_id: str | None = None,
        user_id: str | None = None,
        verification_status: VerificationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[Report]:
        rows = [
            r
            for r in self._reports.values()
            if (disaster_id is None or r.disaster_id == disaster_id)
            and (user_id is None or r.user_id == user_id)
            and (verification_status is None or r.verification_status == verification_status)
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return Page(rows[offset : offset + limit], len(rows), limit, offset)

    # -- resources -----------------------------------------------------------

    async def add_resource(self, resource: Resource) -> Resource:
        self._resources[resource.id] = resource
        return resource

    async def nearest_resources(
        self, center: Coordinates, radius_km: float, limit: int = 20
    ) -> list[Resource]:
        hits = []
        for r in self._resources.values():
            d = haversine_km(center, r.location)
            if d <= radius_km:
                hits.append(r.model_copy(update={"distance_km": round(d, 3)}))
        hits.sort(key=lambda r: r.distance_km or 0.0)
        return hits[:limit]

    async def close(self) -> None:
        pass

    async def ping(self) -> bool:
        return True
