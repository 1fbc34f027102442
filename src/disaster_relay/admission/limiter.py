"""Fixed-window rate admission per (source address, tier).

A window opens on the first request from a source in a tier and lasts
``window_seconds``; up to ``max_requests`` are admitted inside it. The
request that exceeds the ceiling raises :class:`AdmissionRejected` with
the seconds left until the window resets.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass

from disaster_relay.core.clock import IClock, WallClock
from disaster_relay.core.config import AdmissionConfig, TierLimit
from disaster_relay.core.enums import Tier
from disaster_relay.core.errors import AdmissionRejected
from disaster_relay.observability.metrics import record_admission_rejection

logger = logging.getLogger(__name__)

_PRUNE_EVERY = 1024


@dataclass
class _Window:
    started_ms: int
    count: int = 0


@dataclass(frozen=True)
class Admission:
    """Outcome of an admitted request, used for ``RateLimit-*`` headers."""

    tier: Tier
    limit: int
    remaining: int
    reset_after: int  # seconds


class FixedWindowLimiter:
    """Thread-safe fixed-window counter.

    Exempt paths (health/liveness probes) are always admitted and never
    counted.
    """

    def __init__(
        self,
        config: AdmissionConfig | None = None,
        clock: IClock | None = None,
    ) -> None:
        self._config = config or AdmissionConfig()
        self._clock = clock or WallClock()
        self._lock = threading.Lock()
        self._windows: dict[tuple[str, Tier], _Window] = {}
        self._calls = 0

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def is_exempt(self, path: str) -> bool:
        return path in self._config.exempt_paths

    def limit_for(self, tier: Tier) -> TierLimit:
        return self._config.tiers[tier]

    def admit(self, source: str, tier: Tier) -> Admission:
        """Count one request from *source* against *tier*.

        Raises:
            AdmissionRejected: The ceiling for the current window is
                already reached. Nothing is counted.
        """
        spec = self.limit_for(tier)
        window_ms = spec.window_seconds * 1000
        now = self._clock.now_ms()

        with self._lock:
            self._calls += 1
            if self._calls % _PRUNE_EVERY == 0:
                self._prune(now)

            key = (source, tier)
            window = self._windows.get(key)
            if window is None or now - window.started_ms >= window_ms:
                window = _Window(started_ms=now)
                self._windows[key] = window

            reset_ms = window.started_ms + window_ms - now
            reset_after = max(1, math.ceil(reset_ms / 1000))

            if window.count >= spec.max_requests:
                rejected = True
            else:
                window.count += 1
                rejected = False
                remaining = spec.max_requests - window.count

        if rejected:
            record_admission_rejection(tier.value)
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "action": "rate_limit_exceeded",
                    "source": source,
                    "tier": tier.value,
                    "limit": spec.max_requests,
                    "retry_after": reset_after,
                },
            )
            raise AdmissionRejected(
                source, tier.value, spec.max_requests, reset_after, spec.message
            )

        return Admission(tier, spec.max_requests, remaining, reset_after)

    def check(self, source: str, tier: Tier, path: str | None = None) -> Admission | None:
        """Like :meth:`admit`, but exempt paths and a disabled limiter pass."""
        if not self._config.enabled or (path is not None and self.is_exempt(path)):
            return None
        return self.admit(source, tier)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def _prune(self, now_ms: int) -> None:
        # Caller holds the lock.
        stale = [
            key
            for key, w in self._windows.items()
            if now_ms - w.started_ms >= self._config.tiers[key[1]].window_seconds * 1000
        ]
        for key in stale:
            del self._windows[key]

    @property
    def tracked_windows(self) -> int:
        with self._lock:
            return len(self._windows)
