"""Request-scoped dependencies: context lookup and rate admission."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from disaster_relay.admission.limiter import Admission
from disaster_relay.context import AppContext
from disaster_relay.core.enums import Tier


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def client_address(request: Request, trust_forwarded_for: bool = True) -> str:
    """Source address used as the admission key."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def rate_limit_headers(admission: Admission) -> dict[str, str]:
    return {
        "RateLimit-Limit": str(admission.limit),
        "RateLimit-Remaining": str(admission.remaining),
        "RateLimit-Reset": str(admission.reset_after),
    }


def admit(tier: Tier) -> Callable[[Request, Response], Awaitable[None]]:
    """Dependency counting the request against *tier*.

    Raises ``AdmissionRejected`` (rendered as 429) once the ceiling is
    reached. Admitted responses carry ``RateLimit-*`` headers.
    """

    async def dependency(request: Request, response: Response) -> None:
        ctx = get_context(request)
        source = client_address(request, ctx.settings.admission.trust_forwarded_for)
        admission = ctx.limiter.check(source, tier, request.url.path)
        if admission is not None:
            response.headers.update(rate_limit_headers(admission))

    dependency.__name__ = f"admit_{tier.value}"
    return dependency
