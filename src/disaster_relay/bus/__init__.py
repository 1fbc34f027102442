"""Room-scoped fan-out (server) and debounced dispatch (client)."""

from disaster_relay.bus.dispatcher import EventDispatcher, RoomSelector
from disaster_relay.bus.rooms import RoomBus, Subscriber

__all__ = ["EventDispatcher", "RoomBus", "RoomSelector", "Subscriber"]
