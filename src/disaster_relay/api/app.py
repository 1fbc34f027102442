"""HTTP and WebSocket surface: FastAPI application factory.

Routes and their admission tiers (every ``/api`` route also counts
against ``general``):

====================================  =======  ==========
route                                 method   tier
====================================  =======  ==========
/, /health, /metrics                  GET      exempt
/api/disasters                        GET      general
/api/disasters                        POST     ai
/api/disasters/{id}                   GET      general
/api/disasters/{id}                   PUT      ai
/api/disasters/{id}                   DELETE   general
/api/disasters/{id}/social-media      GET      general
/api/disasters/{id}/resources         GET      strict
/api/disasters/{id}/official-updates  GET      general
/api/disasters/{id}/verify-image      POST     ai
/api/reports                          GET/POST general
/api/geocode                          POST     general
/api/gemini/extract-location          POST     ai
/ws                                   WS       -
====================================  =======  ==========

Usage::

    from disaster_relay.api.app import create_app
    from disaster_relay.context import build_context

    app = create_app(build_context(settings))
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from disaster_relay import __version__
from disaster_relay.context import AppContext
from disaster_relay.core.enums import Tier, VerificationStatus
from disaster_relay.core.errors import (
    AdmissionRejected,
    NotFoundError,
    ReliefError,
    UnauthorizedError,
)
from disaster_relay.core.ids import unit_interval, utc_now
from disaster_relay.observability.logger import new_trace_id, set_trace_id
from disaster_relay.observability.metrics import render_latest, set_system_info

from .deps import admit, get_context
from .schemas import (
    DisasterCreate,
    DisasterDelete,
    DisasterUpdate,
    ExtractLocationRequest,
    ExtractLocationResponse,
    GeocodeRequest,
    GeocodeResponse,
    ReportCreate,
    VerifyImageRequest,
    list_envelope,
)
from .ws import serve_subscriber

logger = logging.getLogger(__name__)

UNKNOWN_EXTRACTED = "Unknown Location"


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, f"{exc.entity} not found")

    @app.exception_handler(UnauthorizedError)
    async def unauthorized(request: Request, exc: UnauthorizedError) -> JSONResponse:
        logger.warning(
            "Unauthorized mutation attempt",
            extra={"actor": exc.actor, "entity_id": exc.entity_id, "action": "unauthorized"},
        )
        return _error(403, "Unauthorized")

    @app.exception_handler(AdmissionRejected)
    async def rejected(request: Request, exc: AdmissionRejected) -> JSONResponse:
        retry_after = str(int(exc.retry_after))
        response = _error(429, str(exc))
        response.headers.update(
            {
                "Retry-After": retry_after,
                "RateLimit-Limit": str(exc.limit),
                "RateLimit-Remaining": "0",
                "RateLimit-Reset": retry_after,
            }
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def invalid(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in exc.errors()
        ]
        return JSONResponse(status_code=422, content={"errors": errors})

    @app.exception_handler(ReliefError)
    async def fatal(request: Request, exc: ReliefError) -> JSONResponse:
        logger.error(
            "Request aborted: %s",
            exc,
            exc_info=exc,
            extra={"path": request.url.path, "action": "request_failed"},
        )
        return _error(500, "Internal server error")

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return _error(
                404,
                "Route not found",
                path=request.url.path,
                method=request.method,
                timestamp=utc_now().isoformat(),
            )
        return _error(exc.status_code, str(exc.detail))


def _disaster_routes() -> APIRouter:
    router = APIRouter(prefix="/api/disasters")

    @router.get("")
    async def list_disasters(
        request: Request,
        tag: str | None = None,
        owner_id: str | None = None,
        include_deleted: bool = False,
        limit: int = Query(50, ge=1, le=100),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        page = await get_context(request).disasters.list_disasters(
            tag=tag,
            owner_id=owner_id,
            include_deleted=include_deleted,
            limit=limit,
            offset=offset,
        )
        return list_envelope(page, lambda d: d.to_public())

    @router.post("", status_code=201, dependencies=[Depends(admit(Tier.AI))])
    async def create_disaster(request: Request, body: DisasterCreate) -> dict[str, Any]:
        disaster = await get_context(request).disasters.create(
            title=body.title,
            description=body.description,
            owner_id=body.owner_id,
            location_name=body.location_name,
            tags=body.tags,
        )
        return disaster.to_public()

    @router.get("/{disaster_id}")
    async def get_disaster(request: Request, disaster_id: str) -> dict[str, Any]:
        return (await get_context(request).disasters.get(disaster_id)).to_public()

    @router.put("/{disaster_id}", dependencies=[Depends(admit(Tier.AI))])
    async def update_disaster(
        request: Request, disaster_id: str, body: DisasterUpdate
    ) -> dict[str, Any]:
        disaster = await get_context(request).disasters.update(
            disaster_id,
            body.user_id,
            title=body.title,
            description=body.description,
            location_name=body.location_name,
            tags=body.tags,
        )
        return disaster.to_public()

    @router.delete("/{disaster_id}")
    async def delete_disaster(
        request: Request, disaster_id: str, body: DisasterDelete
    ) -> dict[str, Any]:
        await get_context(request).disasters.delete(disaster_id, body.user_id, body.reason)
        return {"message": "Disaster deleted successfully"}

    @router.get("/{disaster_id}/social-media")
    async def social_media(request: Request, disaster_id: str) -> list[dict[str, Any]]:
        posts = await get_context(request).disasters.social_media(disaster_id)
        return [_dump(p) for p in posts]

    @router.get("/{disaster_id}/resources", dependencies=[Depends(admit(Tier.STRICT))])
    async def resources(
        request: Request,
        disaster_id: str,
        lat: float | None = Query(None, ge=-90, le=90),
        lng: float | None = Query(None, ge=-180, le=180),
        radius: float | None = Query(None, gt=0, le=500),
    ) -> list[dict[str, Any]]:
        found = await get_context(request).disasters.resources(
            disaster_id, lat=lat, lng=lng, radius_km=radius
        )
        return [_dump(r) for r in found]

    @router.get("/{disaster_id}/official-updates")
    async def official_updates(request: Request, disaster_id: str) -> list[dict[str, Any]]:
        updates = await get_context(request).disasters.official_updates(disaster_id)
        return [_dump(u) for u in updates]

    @router.post("/{disaster_id}/verify-image", dependencies=[Depends(admit(Tier.AI))])
    async def verify_image(
        request: Request, disaster_id: str, body: VerifyImageRequest
    ) -> dict[str, Any]:
        verification = await get_context(request).disasters.verify_image(
            disaster_id, body.image_url, body.report_id
        )
        return _dump(verification)

    return router


def _report_routes() -> APIRouter:
    router = APIRouter(prefix="/api/reports")

    @router.get("")
    async def list_reports(
        request: Request,
        disaster_id: str | None = None,
        user_id: str | None = None,
        verification_status: VerificationStatus | None = None,
        limit: int = Query(50, ge=1, le=100),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        page = await get_context(request).reports.list_reports(
            disaster_id=disaster_id,
            user_id=user_id,
            verification_status=verification_status,
            limit=limit,
            offset=offset,
        )
        return list_envelope(page, _dump)

    @router.post("", status_code=201)
    async def create_report(request: Request, body: ReportCreate) -> dict[str, Any]:
        report = await get_context(request).reports.create(
            disaster_id=body.disaster_id,
            user_id=body.user_id,
            content=body.content,
            image_url=body.image_url,
        )
        return _dump(report)

    return router


def _enrichment_routes() -> APIRouter:
    router = APIRouter(prefix="/api")

    @router.post("/geocode", response_model=GeocodeResponse)
    async def geocode(request: Request, body: GeocodeRequest) -> GeocodeResponse:
        result = await get_context(request).enrichment.geocode(body.location)
        coords = result.value
        return GeocodeResponse(
            location=body.location,
            coordinates=coords,
            formatted_address=body.location,
            confidence=round(0.85 + 0.15 * unit_interval(body.location), 4) if coords else 0.0,
            timestamp=utc_now(),
        )

    @router.post(
        "/gemini/extract-location",
        response_model=ExtractLocationResponse,
        dependencies=[Depends(admit(Tier.AI))],
    )
    async def extract_location(
        request: Request, body: ExtractLocationRequest
    ) -> ExtractLocationResponse:
        ctx = get_context(request)
        result = await ctx.enrichment.extract_location(body.description)
        location = result.value or UNKNOWN_EXTRACTED
        confidence = (
            round(0.8 + 0.2 * unit_interval(body.description), 4) if result.value else 0.3
        )
        logger.info(
            "Location extracted: %r",
            location,
            extra={"action": "location_extracted", "confidence": confidence},
        )
        return ExtractLocationResponse(
            description=body.description,
            location=location,
            confidence=confidence,
            extraction_method=(
                "gemini_ai" if ctx.settings.enrichment.extractor == "gemini" else "pattern_match"
            ),
            timestamp=utc_now(),
        )

    return router


def create_app(ctx: AppContext, *, manage_lifecycle: bool = True) -> FastAPI:
    """Create the relay FastAPI application around *ctx*.

    With *manage_lifecycle* the app starts and stops the context in its
    lifespan; pass ``False`` when the caller owns the context.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await ctx.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await ctx.stop()

    app = FastAPI(
        title="Disaster Response Relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.ctx = ctx
    app.state.start_time = time.monotonic()
    set_system_info(__version__, ctx.settings.environment)

    @app.middleware("http")
    async def trace_requests(request: Request, call_next: Any) -> Response:
        trace_id = request.headers.get("x-trace-id")
        if trace_id:
            set_trace_id(trace_id)
        else:
            trace_id = new_trace_id()
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    _install_error_handlers(app)

    def _status(message: str | None = None) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "status": "OK",
            "timestamp": utc_now().isoformat(),
            "uptime": round(time.monotonic() - app.state.start_time, 3),
            "environment": ctx.settings.environment,
        }
        if message:
            doc = {"message": message, **doc, "version": __version__}
        return doc

    @app.get("/")
    async def root() -> dict[str, Any]:
        return _status("Disaster Response Relay API")

    @app.get("/health")
    async def health() -> dict[str, Any]:
        results = await ctx.health.check_all()
        doc = _status()
        if not all(r.healthy for r in results):
            doc["status"] = "DEGRADED"
        doc["components"] = [r.model_dump() for r in results]
        return doc

    @app.get("/metrics")
    async def metrics() -> Response:
        if not ctx.settings.observability.metrics_enabled:
            return _error(404, "Metrics disabled")
        payload, content_type = render_latest()
        return Response(content=payload, media_type=content_type)

    general = [Depends(admit(Tier.GENERAL))]
    app.include_router(_disaster_routes(), dependencies=general)
    app.include_router(_report_routes(), dependencies=general)
    app.include_router(_enrichment_routes(), dependencies=general)

    @app.websocket("/ws")
    async def websocket(websocket: WebSocket) -> None:
        await serve_subscriber(websocket, ctx.bus)

    return app
