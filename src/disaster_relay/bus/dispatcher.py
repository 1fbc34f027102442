"""Client-side debounced dispatch.

Each topic owns one pending slot (latest payload + timer handle). A new
event for the topic replaces the payload and restarts the timer; when
the timer fires, every handler registered at that moment runs once with
the final payload. Topics never wait on each other.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from disaster_relay.core.scheduler import LoopScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]

DEFAULT_DEBOUNCE_MS = 300


@dataclass
class _Pending:
    payload: Any
    handle: TimerHandle


def _run_callback(
    fn: Callable[..., Any],
    *args: Any,
    on_error: Callable[[BaseException], None] | None = None,
) -> None:
    """Call *fn*; if it returns an awaitable, schedule it on the running loop.

    *on_error* runs with the exception if the scheduled awaitable fails.
    """
    result = fn(*args)
    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        task.add_done_callback(functools.partial(_log_task_error, on_error=on_error))


def _log_task_error(
    task: asyncio.Future,
    on_error: Callable[[BaseException], None] | None = None,
) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is None:
        return
    logger.error("Async handler failed", exc_info=exc)
    if on_error is not None:
        on_error(exc)


class EventDispatcher:
    """Per-topic debouncing dispatcher.

    Handler registration changes take effect on the next delivery; a
    delivery already in progress uses the handler list snapshotted when
    its timer fired.
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self._scheduler = scheduler or LoopScheduler()
        self._delay = debounce_ms / 1000.0
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._pending: dict[str, _Pending] = {}
        self._error_counts: dict[str, int] = defaultdict(int)
        self._delivered = 0

    def on(self, topic: str, handler: Handler) -> None:
        self._handlers[topic].append(handler)

    def off(self, topic: str, handler: Handler) -> None:
        handlers = self._handlers.get(topic)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[topic]

    def dispatch(self, topic: str, payload: Any) -> None:
        """Buffer *payload* for *topic*, superseding any pending one."""
        pending = self._pending.get(topic)
        if pending is not None:
            pending.handle.cancel()
        handle = self._scheduler.call_later(self._delay, lambda: self._fire(topic))
        self._pending[topic] = _Pending(payload, handle)

    def flush(self, topic: str | None = None) -> None:
        """Deliver pending payloads now instead of at window expiry."""
        topics = [topic] if topic is not None else list(self._pending)
        for t in topics:
            pending = self._pending.get(t)
            if pending is not None:
                pending.handle.cancel()
                self._fire(t)

    def close(self) -> None:
        """Cancel every pending delivery."""
        for pending in self._pending.values():
            pending.handle.cancel()
        self._pending.clear()

    def _fire(self, topic: str) -> None:
        pending = self._pending.pop(topic, None)
        if pending is None:
            return
        for handler in list(self._handlers.get(topic, ())):
            try:
                _run_callback(
                    handler,
                    pending.payload,
                    on_error=lambda exc, t=topic: self._record_error(t),
                )
                self._delivered += 1
            except Exception:
                self._record_error(topic)
                logger.exception("Handler error on topic=%s", topic)

    def _record_error(self, topic: str) -> None:
        self._error_counts[topic] += 1

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def pending_topics(self) -> list[str]:
        return list(self._pending)

    def handler_count(self, topic: str) -> int:
        return len(self._handlers.get(topic, ()))

    @property
    def invocations(self) -> int:
        return self._delivered

    def get_error_counts(self) -> dict[str, int]:
        return dict(self._error_counts)


class RoomSelector:
    """Debounces room membership changes driven by selection churn.

    Only the last selection in a burst is applied: the selector leaves
    its current room and joins the new one once, after the window. A
    burst that ends on the current room causes no traffic at all.
    """

    def __init__(
        self,
        join: Callable[[str], Any],
        leave: Callable[[str], Any],
        scheduler: Scheduler | None = None,
        debounce_ms: int = DEFAULT_DEBOUNCE_MS,
    ) -> None:
        self._join = join
        self._leave = leave
        self._scheduler = scheduler or LoopScheduler()
        self._delay = debounce_ms / 1000.0
        self._current: str | None = None
        self._desired: str | None = None
        self._handle: TimerHandle | None = None

    @property
    def current(self) -> str | None:
        return self._current

    def select(self, disaster_id: str | None) -> None:
        """Request membership in *disaster_id*'s room (``None`` leaves)."""
        self._desired = disaster_id
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._scheduler.call_later(self._delay, self._apply)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _apply(self) -> None:
        self._handle = None
        desired = self._desired
        if desired == self._current:
            return
        if self._current is not None:
            _run_callback(self._leave, self._current)
        if desired is not None:
            _run_callback(self._join, desired)
        logger.debug("Room selection %s -> %s", self._current, desired)
        self._current = desired
