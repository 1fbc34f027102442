"""Citizen reports attached to a disaster."""

from __future__ import annotations

import logging

from disaster_relay.bus.rooms import RoomBus
from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.enums import Topic, VerificationStatus
from disaster_relay.core.errors import NotFoundError
from disaster_relay.core.models import Report
from disaster_relay.enrichment.service import EnrichmentService
from disaster_relay.storage.base import DisasterStore, Page, ReportStore

logger = logging.getLogger(__name__)


class ReportService:
    def __init__(
        self,
        reports: ReportStore,
        disasters: DisasterStore,
        enrichment: EnrichmentService,
        bus: RoomBus,
        *,
        clock: IClock | None = None,
    ) -> None:
        self._reports = reports
        self._disasters = disasters
        self._enrichment = enrichment
        self._bus = bus
        self._clock = clock or WallClock()

    async def create(
        self,
        *,
        disaster_id: str,
        user_id: str,
        content: str,
        image_url: str | None = None,
    ) -> Report:
        """Persist a report; an attached image is verified first.

        Verification never blocks the write: when the verifier is down the
        report is stored as ``pending``.

        Raises:
            NotFoundError: Unknown or soft-deleted disaster.
        """
        disaster = await self._disasters.get_disaster(disaster_id)
        if disaster is None or disaster.is_deleted:
            raise NotFoundError("Disaster", disaster_id)

        status = VerificationStatus.PENDING
        if image_url:
            verification = (await self._enrichment.verify_image(image_url)).value
            if verification is not None:
                status = verification.status

        report = Report(
            disaster_id=disaster_id,
            user_id=user_id,
            content=content,
            image_url=image_url,
            verification_status=status,
            created_at=self._clock.now(),
        )
        await self._reports.insert_report(report)
        logger.info(
            "Report processed: %s",
            content[:50],
            extra={
                "action": "report_created",
                "report_id": report.id,
                "disaster_id": disaster_id,
                "user_id": user_id,
                "has_image": bool(image_url),
            },
        )
        await self._bus.publish_to_disaster(
            disaster_id,
            Topic.REPORT_CREATED.value,
            {"disaster_id": disaster_id, "report_id": report.id, "user_id": user_id},
        )
        return report

    async def get(self, report_id: str) -> Report:
        report = await self._reports.get_report(report_id)
        if report is None:
            raise NotFoundError("Report", report_id)
        return report

    async def list_reports(
        self,
        *,
        disaster_id: str | None = None,
        user_id: str | None = None,
        verification_status: VerificationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Page[Report]:
        return await self._reports.list_reports(
            disaster_id=disaster_id,
            user_id=user_id,
            verification_status=verification_status,
            limit=limit,
            offset=offset,
        )
