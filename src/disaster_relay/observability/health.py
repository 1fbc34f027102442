"""Health checks.

Reports health status of the components the relay depends on.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable

from pydantic import BaseModel

logger = logging.getLogger(__name__)

CheckFn = Callable[[], Awaitable[tuple[bool, str]]]


class ComponentHealth(BaseModel):
    component: str
    healthy: bool
    message: str = ""
    latency_ms: float = 0.0


class HealthChecker:
    """Checks health of system components."""

    def __init__(self) -> None:
        self._checks: dict[str, CheckFn] = {}

    def register_check(self, component: str, check_fn: CheckFn) -> None:
        """Register a health check function for a component.

        check_fn should be async and return (healthy: bool, message: str).
        """
        self._checks[component] = check_fn

    async def check_all(self) -> list[ComponentHealth]:
        """Run all health checks and return results."""
        results = []

        for component, check_fn in self._checks.items():
            start = time.monotonic()
            try:
                healthy, message = await check_fn()
            except Exception as e:
                healthy, message = False, f"Check failed: {e}"
                logger.warning("Health check %s raised", component, exc_info=True)
            latency = (time.monotonic() - start) * 1000
            results.append(
                ComponentHealth(
                    component=component,
                    healthy=healthy,
                    message=message,
                    latency_ms=latency,
                )
            )

        return results
