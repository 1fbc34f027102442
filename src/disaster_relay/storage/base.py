"""Persistence interfaces.

The relational engine is an external collaborator; the relay only relies
on these operations. ``memory.MemoryStore`` and ``sql.repos.SqlStore``
implement all three protocols.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, Protocol, TypeVar

from disaster_relay.core.enums import VerificationStatus
from disaster_relay.core.models import Coordinates, Disaster, Report, Resource

T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


class DisasterStore(Protocol):
    async def insert_disaster(self, disaster: Disaster) -> Disaster:
        ...

    async def get_disaster(self, disaster_id: str) -> Disaster | None:
        ...

    async def update_disaster(self, disaster: Disaster) -> Disaster:
        """Replace the stored row. The audit trail may only grow."""
        ...

    async def list_disasters(
        self,
        *,
        tag: str | None = None,
        owner_id: str | None = None,
        include_deleted: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[Disaster]:
        ...


class ReportStore(Protocol):
    async def insert_report(self, report: Report) -> Report:
        ...

    async def get_report(self, report_id: str) -> Report | None:
        ...

    async def set_verification_status(
        self, report_id: str, status: VerificationStatus
    ) -> Report | None:
        ...

    async def list_reports(
        self,
        *,
        disaster_id: str | None = None,
        user_id: str | None = None,
        verification_status: VerificationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[Report]:
        ...


class ResourceStore(Protocol):
    async def add_resource(self, resource: Resource) -> Resource:
        ...

    async def nearest_resources(
        self, center: Coordinates, radius_km: float, limit: int = 20
    ) -> list[Resource]:
        """Resources within *radius_km*, nearest first, with ``distance_km`` set."""
        ...
