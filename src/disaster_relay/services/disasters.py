"""Disaster lifecycle: create, update, soft delete and per-disaster feeds.

Every mutation follows the same flow:

1. best-effort enrichment (location extraction, geocoding), never blocking
2. audit entry (create / field diff / delete) appended to the trail
3. persistence through the :class:`DisasterStore`
4. fan-out: lifecycle events are global, feed events go to the
   disaster's room
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Sequence

from disaster_relay.audit.trail import append, creation_entry, deletion_entry, diff
from disaster_relay.bus.rooms import RoomBus
from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.enums import Topic
from disaster_relay.core.errors import NotFoundError, UnauthorizedError
from disaster_relay.core.models import (
    Coordinates,
    Disaster,
    ImageVerification,
    OfficialUpdate,
    Resource,
    SocialPost,
)
from disaster_relay.enrichment.service import EnrichmentService
from disaster_relay.storage.base import DisasterStore, Page, ReportStore

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown"


class DisasterService:
    """Owns the disaster mutation flow.

    Writes to the same disaster are serialized by a per-disaster lock so
    audit entries land in submission order; different disasters never
    wait on each other.
    """

    def __init__(
        self,
        store: DisasterStore,
        enrichment: EnrichmentService,
        bus: RoomBus,
        *,
        reports: ReportStore | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._store = store
        self._enrichment = enrichment
        self._bus = bus
        self._reports = reports
        self._clock = clock or WallClock()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, disaster_id: str) -> asyncio.Lock:
        lock = self._locks.get(disaster_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[disaster_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Derived location
    # ------------------------------------------------------------------

    async def _resolve_location(
        self, location_name: str | None, description: str
    ) -> tuple[str, Coordinates | None]:
        """Best-effort (name, coordinates). Failures leave them unknown."""
        name = location_name
        if not name:
            extracted = await self._enrichment.extract_location(description)
            name = extracted.value
            if extracted.degraded:
                logger.warning(
                    "Location extraction unavailable, continuing without it",
                    extra={"action": "location_extraction_skipped"},
                )
            else:
                logger.info(
                    "Location extracted: %r",
                    name,
                    extra={"action": "location_extracted"},
                )
        if not name:
            return UNKNOWN_LOCATION, None
        return name, await self._geocode(name)

    async def _geocode(self, name: str) -> Coordinates | None:
        if name == UNKNOWN_LOCATION:
            return None
        result = await self._enrichment.geocode(name)
        if result.degraded:
            logger.warning(
                "Geocoding unavailable for %r, continuing without coordinates",
                name,
                extra={"action": "geocoding_skipped"},
            )
            return None
        logger.info("Location geocoded: %s", name, extra={"action": "geocoding_completed"})
        return result.value

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, disaster_id: str) -> Disaster:
        """Return the disaster, soft-deleted ones included."""
        disaster = await self._store.get_disaster(disaster_id)
        if disaster is None:
            raise NotFoundError("Disaster", disaster_id)
        return disaster

    async def get_live(self, disaster_id: str) -> Disaster:
        disaster = await self.get(disaster_id)
        if disaster.is_deleted:
            raise NotFoundError("Disaster", disaster_id)
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
        page = await self._store.list_disasters(
            tag=tag,
            owner_id=owner_id,
            include_deleted=include_deleted,
            limit=limit,
            offset=offset,
        )
        logger.info(
            "Disasters fetched: %d records",
            len(page.items),
            extra={"action": "disasters_fetched", "tag": tag, "owner_id": owner_id},
        )
        return page

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(
        self,
        *,
        title: str,
        description: str,
        owner_id: str,
        location_name: str | None = None,
        tags: Sequence[str] = (),
    ) -> Disaster:
        name, coords = await self._resolve_location(location_name, description)
        disaster = Disaster(
            title=title,
            description=description,
            location_name=name,
            location=coords,
            tags=list(tags),
            owner_id=owner_id,
            created_at=self._clock.now(),
            audit_trail=(creation_entry(owner_id, clock=self._clock),),
        )
        await self._store.insert_disaster(disaster)
        logger.info(
            "Disaster created: %s",
            disaster.title,
            extra={
                "action": "disaster_created",
                "disaster_id": disaster.id,
                "owner_id": owner_id,
                "location": name,
            },
        )
        await self._bus.broadcast(
            Topic.DISASTER_UPDATED.value,
            {"id": disaster.id, "title": disaster.title, "action": "created"},
        )
        return disaster

    async def update(
        self,
        disaster_id: str,
        actor: str,
        *,
        title: str | None = None,
        description: str | None = None,
        location_name: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> Disaster:
        """Apply the given fields; ``None`` keeps the stored value.

        Coordinates are re-derived only when the location name changes;
        if that fails the previous coordinates are kept.

        Raises:
            NotFoundError: Unknown or soft-deleted disaster.
            UnauthorizedError: *actor* is not the owner.
        """
        async with self._lock_for(disaster_id):
            existing = await self.get_live(disaster_id)
            if existing.owner_id != actor:
                raise UnauthorizedError(actor, disaster_id)

            new_name = location_name or existing.location_name
            coords = existing.location
            if new_name != existing.location_name:
                coords = await self._geocode(new_name) or existing.location

            candidate = existing.model_copy(
                update={
                    "title": title if title is not None else existing.title,
                    "description": description if description is not None else existing.description,
                    "location_name": new_name,
                    "location": coords,
                    "tags": list(tags) if tags is not None else existing.tags,
                }
            )
            updated = append(candidate, diff(existing, candidate, actor, clock=self._clock))
            await self._store.update_disaster(updated)

        if updated.location_name != existing.location_name or updated.tags != existing.tags:
            await self._enrichment.invalidate(updated)

        logger.info(
            "Disaster updated: %s",
            updated.title,
            extra={"action": "disaster_updated", "disaster_id": disaster_id, "user_id": actor},
        )
        await self._bus.broadcast(
            Topic.DISASTER_UPDATED.value,
            {"id": updated.id, "title": updated.title, "action": "updated"},
        )
        return updated

    async def delete(
        self, disaster_id: str, actor: str, reason: str = "User requested deletion"
    ) -> Disaster:
        """Soft delete: append a ``delete`` entry; the row stays readable."""
        async with self._lock_for(disaster_id):
            existing = await self.get_live(disaster_id)
            if existing.owner_id != actor:
                raise UnauthorizedError(actor, disaster_id)
            deleted = append(existing, deletion_entry(actor, clock=self._clock, reason=reason))
            await self._store.update_disaster(deleted)

        logger.info(
            "Disaster deleted: %s",
            existing.title,
            extra={"action": "disaster_deleted", "disaster_id": disaster_id, "user_id": actor},
        )
        await self._bus.broadcast(
            Topic.DISASTER_DELETED.value,
            {"id": disaster_id, "title": existing.title, "action": "deleted"},
        )
        return deleted

    # ------------------------------------------------------------------
    # Feeds
    # ------------------------------------------------------------------

    async def social_media(self, disaster_id: str) -> list[SocialPost]:
        disaster = await self.get_live(disaster_id)
        posts = (await self._enrichment.social_media(disaster)).unwrap()
        logger.info(
            "Social media reports processed: %d posts",
            len(posts),
            extra={"action": "social_media_processed", "disaster_id": disaster_id},
        )
        await self._bus.publish_to_disaster(
            disaster_id,
            Topic.SOCIAL_MEDIA_UPDATED.value,
            {"disaster_id": disaster_id, "count": len(posts)},
        )
        return posts

    async def official_updates(self, disaster_id: str) -> list[OfficialUpdate]:
        disaster = await self.get_live(disaster_id)
        updates = (await self._enrichment.official_updates(disaster)).unwrap()
        logger.info(
            "Official updates aggregated: %d updates",
            len(updates),
            extra={"action": "official_updates_aggregated", "disaster_id": disaster_id},
        )
        return updates

    async def resources(
        self,
        disaster_id: str,
        *,
        lat: float | None = None,
        lng: float | None = None,
        radius_km: float | None = None,
    ) -> list[Resource]:
        disaster = await self.get_live(disaster_id)
        center = Coordinates(lat=lat, lng=lng) if lat is not None and lng is not None else None
        found = (await self._enrichment.nearby_resources(disaster, center, radius_km)).unwrap()
        await self._bus.publish_to_disaster(
            disaster_id,
            Topic.RESOURCES_UPDATED.value,
            {"disaster_id": disaster_id, "count": len(found)},
        )
        return found

    async def verify_image(
        self, disaster_id: str, image_url: str, report_id: str | None = None
    ) -> ImageVerification:
        """Verify an image; with *report_id* the report's status follows."""
        await self.get_live(disaster_id)
        verification = (await self._enrichment.verify_image(image_url)).unwrap()
        if report_id is not None and self._reports is not None:
            report = await self._reports.set_verification_status(report_id, verification.status)
            if report is None:
                raise NotFoundError("Report", report_id)
        logger.info(
            "Image verification completed: %s",
            verification.status.value,
            extra={
                "action": "image_verified",
                "disaster_id": disaster_id,
                "confidence": verification.confidence,
            },
        )
        return verification
