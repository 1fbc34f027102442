"""Realtime WebSocket client for the ``/ws`` endpoint.

Frames are JSON objects::

    -> {"action": "join_disaster", "disaster_id": "..."}
    -> {"action": "leave_disaster", "disaster_id": "..."}
    <- {"event": "<topic>", "data": <payload>}

Incoming events go through an :class:`EventDispatcher`; room changes go
through a :class:`RoomSelector` so rapid selection changes cost one
leave/join pair.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from disaster_relay.core.scheduler import Scheduler

from .dispatcher import DEFAULT_DEBOUNCE_MS, EventDispatcher, Handler, RoomSelector

logger = logging.getLogger(__name__)


class RealtimeClient:
    """aiohttp-based subscriber.

    Usage::

        async with RealtimeClient("ws://localhost:5000/ws") as client:
            client.on("resources_updated", refresh)
            client.select("some-disaster-id")
            await client.run()
    """

    def __init__(
        self,
        url: str,
        *,
        scheduler: Scheduler | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
        session: aiohttp.ClientSession | None = None,
        heartbeat: float | None = 30.0,
    ) -> None:
        self._url = url
        self._heartbeat = heartbeat
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self.dispatcher = EventDispatcher(scheduler, debounce_ms)
        self.selector = RoomSelector(self.join, self.leave, scheduler, debounce_ms)

    async def connect(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        self._ws = await self._session.ws_connect(self._url, heartbeat=self._heartbeat)
        logger.info("Realtime client connected to %s", self._url)

    async def close(self) -> None:
        self.selector.close()
        self.dispatcher.close()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        logger.info("Realtime client closed")

    async def __aenter__(self) -> RealtimeClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def join(self, disaster_id: str) -> None:
        await self._send({"action": "join_disaster", "disaster_id": disaster_id})

    async def leave(self, disaster_id: str) -> None:
        await self._send({"action": "leave_disaster", "disaster_id": disaster_id})

    def select(self, disaster_id: str | None) -> None:
        self.selector.select(disaster_id)

    async def _send(self, frame: dict[str, Any]) -> None:
        if self._ws is None or self._ws.closed:
            raise RuntimeError("Realtime client is not connected")
        await self._ws.send_json(frame)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, topic: str, handler: Handler) -> None:
        self.dispatcher.on(topic, handler)

    def off(self, topic: str, handler: Handler) -> None:
        self.dispatcher.off(topic, handler)

    def feed(self, frame: Any) -> None:
        """Route one decoded frame into the dispatcher."""
        if not isinstance(frame, dict) or "event" not in frame:
            logger.warning("Ignoring malformed frame: %r", frame)
            return
        self.dispatcher.dispatch(str(frame["event"]), frame.get("data"))

    async def run(self) -> None:
        """Read frames until the server closes the connection."""
        if self._ws is None:
            raise RuntimeError("Realtime client is not connected")
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = msg.json()
                except ValueError:
                    logger.warning("Ignoring non-JSON frame")
                    continue
                self.feed(frame)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning("WebSocket error: %s", self._ws.exception())
                break
