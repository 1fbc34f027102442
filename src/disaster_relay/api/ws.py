"""WebSocket transport for the room bus.

Inbound frames::

    {"action": "join_disaster" | "leave_disaster", "disaster_id": "..."}

Outbound frames::

    {"event": "<topic>", "data": <payload>}

Joins and leaves are acknowledged with ``joined_disaster`` /
``left_disaster`` events; once the ack arrives, every later publish to
the room reaches this connection.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from disaster_relay.bus.rooms import RoomBus
from disaster_relay.core.ids import new_id, room_id

logger = logging.getLogger(__name__)

JOIN = "join_disaster"
LEAVE = "leave_disaster"


class WebSocketSubscriber:
    """Adapts a FastAPI WebSocket to the bus ``Subscriber`` protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.id = new_id()
        self._ws = websocket
        self._send_lock = asyncio.Lock()

    async def send(self, topic: str, payload: Any) -> None:
        async with self._send_lock:
            await self._ws.send_json({"event": topic, "data": payload})


async def _handle_frame(bus: RoomBus, subscriber: WebSocketSubscriber, raw: str) -> None:
    try:
        frame = json.loads(raw)
    except ValueError:
        await subscriber.send("error", {"error": "Frame is not valid JSON"})
        return

    action = frame.get("action") if isinstance(frame, dict) else None
    disaster_id = frame.get("disaster_id") if isinstance(frame, dict) else None
    if action not in (JOIN, LEAVE) or not isinstance(disaster_id, str) or not disaster_id:
        await subscriber.send("error", {"error": "Unknown action", "frame": frame})
        return

    if action == JOIN:
        bus.join(subscriber, room_id(disaster_id))
        await subscriber.send("joined_disaster", {"disaster_id": disaster_id})
    else:
        bus.leave(subscriber, room_id(disaster_id))
        await subscriber.send("left_disaster", {"disaster_id": disaster_id})


async def serve_subscriber(websocket: WebSocket, bus: RoomBus) -> None:
    """Run one connection until the peer disconnects."""
    await websocket.accept()
    subscriber = WebSocketSubscriber(websocket)
    bus.connect(subscriber)
    try:
        while True:
            raw = await websocket.receive_text()
            await _handle_frame(bus, subscriber, raw)
    except WebSocketDisconnect:
        pass
    finally:
        bus.disconnect(subscriber)
