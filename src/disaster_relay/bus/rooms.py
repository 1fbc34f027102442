"""Room-scoped fan-out for connected subscribers.

Delivery is best-effort and at most once. Events are never stored:
subscribers that join a room after a publish do not see it.

Improvements over a bare socket registry:
- Per-topic delivery error counters
- Bounded per-send timeout so one slow subscriber cannot stall a publish
- Rooms are torn down as soon as their last member leaves
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from disaster_relay.core.ids import room_id
from disaster_relay.observability.metrics import (
    record_delivery,
    update_active_rooms,
    update_connected_subscribers,
)

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """One end of a persistent bidirectional channel."""

    @property
    def id(self) -> str:
        ...

    async def send(self, topic: str, payload: Any) -> None:
        ...


@dataclass
class _Membership:
    subscriber: Subscriber
    # None means every topic published to the room.
    topics: frozenset[str] | None = None

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics


@dataclass
class DeliveryFailure:
    """Record of one failed send."""

    topic: str
    room: str | None
    subscriber_id: str
    error: str
    timestamp: float = field(default_factory=time.monotonic)


class RoomBus:
    """Server-side room registry and broadcaster.

    Membership is guarded by a lock and snapshotted before each send, so
    join/leave may run concurrently with publish. A subscriber removed
    mid-publish may still receive that one event; it never receives a
    later one.
    """

    def __init__(self, send_timeout: float = 2.0, max_failures: int = 1000) -> None:
        self._send_timeout = send_timeout
        self._max_failures = max_failures
        self._lock = threading.Lock()
        self._subscribers: dict[str, Subscriber] = {}
        self._rooms: dict[str, dict[str, _Membership]] = {}
        self._joined: dict[str, set[str]] = defaultdict(set)

        # Observability
        self._error_counts: dict[str, int] = defaultdict(int)
        self._failures: list[DeliveryFailure] = []
        self._delivered = 0

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def connect(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers[subscriber.id] = subscriber
            count = len(self._subscribers)
        update_connected_subscribers(count)
        logger.info("Subscriber connected: %s", subscriber.id)

    def disconnect(self, subscriber: Subscriber) -> None:
        """Forget *subscriber* and remove it from every room."""
        self.leave_all(subscriber)
        with self._lock:
            self._subscribers.pop(subscriber.id, None)
            self._joined.pop(subscriber.id, None)
            count = len(self._subscribers)
        update_connected_subscribers(count)
        logger.info("Subscriber disconnected: %s", subscriber.id)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def join(
        self,
        subscriber: Subscriber,
        room: str,
        topics: Iterable[str] | None = None,
    ) -> None:
        """Add *subscriber* to *room*; later publishes reach it."""
        with self._lock:
            self._subscribers.setdefault(subscriber.id, subscriber)
            members = self._rooms.setdefault(room, {})
            members[subscriber.id] = _Membership(
                subscriber, frozenset(topics) if topics is not None else None
            )
            self._joined[subscriber.id].add(room)
            active = len(self._rooms)
        update_active_rooms(active)
        logger.info("Subscriber %s joined %s", subscriber.id, room)

    def leave(self, subscriber: Subscriber, room: str) -> None:
        with self._lock:
            self._remove(subscriber.id, room)
            active = len(self._rooms)
        update_active_rooms(active)
        logger.info("Subscriber %s left %s", subscriber.id, room)

    def leave_all(self, subscriber: Subscriber) -> None:
        with self._lock:
            for room in list(self._joined.get(subscriber.id, ())):
                self._remove(subscriber.id, room)
            active = len(self._rooms)
        update_active_rooms(active)

    def _remove(self, subscriber_id: str, room: str) -> None:
        # Caller holds the lock.
        members = self._rooms.get(room)
        if members is not None:
            members.pop(subscriber_id, None)
            if not members:
                del self._rooms[room]
        rooms = self._joined.get(subscriber_id)
        if rooms is not None:
            rooms.discard(room)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def publish(self, room: str, topic: str, payload: Any) -> int:
        """Deliver to every member of *room* subscribed to *topic*.

        Publishing to an empty or unknown room is a no-op. Returns the
        number of successful deliveries.
        """
        with self._lock:
            members = self._rooms.get(room)
            targets = [m.subscriber for m in members.values() if m.wants(topic)] if members else []
        if not targets:
            logger.debug("Publish to empty room %s (topic=%s)", room, topic)
            return 0
        return await self._deliver(targets, topic, payload, room)

    async def publish_to_disaster(self, disaster_id: str, topic: str, payload: Any) -> int:
        return await self.publish(room_id(disaster_id), topic, payload)

    async def broadcast(self, topic: str, payload: Any) -> int:
        """Deliver a global lifecycle event to every connected subscriber."""
        with self._lock:
            targets = list(self._subscribers.values())
        if not targets:
            return 0
        return await self._deliver(targets, topic, payload, None)

    async def _deliver(
        self,
        targets: list[Subscriber],
        topic: str,
        payload: Any,
        room: str | None,
    ) -> int:
        results = await asyncio.gather(
            *(
                asyncio.wait_for(s.send(topic, payload), timeout=self._send_timeout)
                for s in targets
            ),
            return_exceptions=True,
        )
        ok = 0
        for subscriber, result in zip(targets, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                self._record_failure(topic, room, subscriber, result)
            else:
                ok += 1
                record_delivery(topic, True)
        self._delivered += ok
        return ok

    def _record_failure(
        self,
        topic: str,
        room: str | None,
        subscriber: Subscriber,
        exc: BaseException,
    ) -> None:
        self._error_counts[topic] += 1
        self._failures.append(
            DeliveryFailure(
                topic=topic,
                room=room,
                subscriber_id=subscriber.id,
                error=repr(exc),
            )
        )
        if len(self._failures) > self._max_failures:
            del self._failures[: len(self._failures) - self._max_failures]
        record_delivery(topic, False)
        logger.warning(
            "Delivery failed: topic=%s room=%s subscriber=%s error=%r",
            topic,
            room,
            subscriber.id,
            exc,
        )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def members(self, room: str) -> set[str]:
        with self._lock:
            return set(self._rooms.get(room, {}))

    def rooms_of(self, subscriber: Subscriber) -> set[str]:
        with self._lock:
            return set(self._joined.get(subscriber.id, ()))

    @property
    def active_rooms(self) -> int:
        with self._lock:
            return len(self._rooms)

    @property
    def connected(self) -> int:
        with self._lock:
            return len(self._subscribers)

    @property
    def messages_delivered(self) -> int:
        return self._delivered

    def get_error_counts(self) -> dict[str, int]:
        """Return per-topic delivery error counts."""
        return dict(self._error_counts)

    @property
    def failures(self) -> list[DeliveryFailure]:
        return list(self._failures)
