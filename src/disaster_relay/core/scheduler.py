"""Delayed-call scheduling for debounce timers.

LoopScheduler: backed by the running asyncio loop (real clients)
ManualScheduler: driven by a SimClock (tests)

The dispatcher and the room selector own one timer handle per key and
cancel/replace it on every new event, so the only thing they need from
a scheduler is ``call_later`` returning a cancelable handle.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol

from .clock import SimClock


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...

    def cancelled(self) -> bool:
        ...


class Scheduler(Protocol):
    """Schedules a zero-argument callback after *delay* seconds."""

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle:
        ...


class LoopScheduler:
    """Scheduler backed by ``loop.call_later``.

    The loop is resolved lazily so a scheduler can be built before the
    client's event loop starts.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class ManualTimer:
    """Handle returned by :class:`ManualScheduler`."""

    __slots__ = ("due_ms", "callback", "_cancelled")

    def __init__(self, due_ms: int, callback: Callable[[], None]) -> None:
        self.due_ms = due_ms
        self.callback = callback
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Deterministic scheduler for tests.

    Callbacks fire only from :meth:`advance`, in due-time order (ties in
    scheduling order), and only if not cancelled by then.
    """

    def __init__(self, clock: SimClock | None = None) -> None:
        self.clock = clock or SimClock()
        self._queue: list[tuple[int, int, ManualTimer]] = []
        self._seq = itertools.count()

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> ManualTimer:
        timer = ManualTimer(self.clock.now_ms() + int(delay * 1000), callback)
        heapq.heappush(self._queue, (timer.due_ms, next(self._seq), timer))
        return timer

    def advance(self, seconds: float) -> int:
        """Move the clock forward and fire everything that became due.

        Returns the number of callbacks fired.
        """
        target = self.clock.now_ms() + int(seconds * 1000)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            due_ms, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            if due_ms > self.clock.now_ms():
                self.clock.advance_ms(due_ms - self.clock.now_ms())
            timer.callback()
            fired += 1
        if target > self.clock.now_ms():
            self.clock.advance_ms(target - self.clock.now_ms())
        return fired

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, t in self._queue if not t.cancelled())
