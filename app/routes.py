"""FastAPI route definitions for the URL shortener REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /encode
        ├─ EncodeRequest (request body)
        └─ EncodeResponse (200) or 422/429

    GET  /decode?short_code=...
        └─ DecodeResponse (200) or 404/429

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ throttle()  │──► 429 + Retry-After
    │ dependency  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Inject      │
    │ Context     │
    │ (DB session)│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ URL Service │
    │ encode or   │
    │ decode      │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ JSON        │
    │ Response    │
    └─────────────┘

Key Behaviours
===============
- Admission control runs before the handler; denied requests never reach the
  mapping store.
- Validation failures return 422 with the list of violated constraints.
- Unknown short codes return 404 and are logged at info level only.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.database import ping_db
from app.dependencies import (
    RequestContext,
    ServiceManager,
    get_request_context,
    get_service_manager,
    get_url_service,
    throttle,
)
from app.enums import HealthStatus
from app.rate_limit import DECODE_ROUTE, ENCODE_ROUTE
from app.schemas import (
    DecodeResponse,
    EncodeErrorResponse,
    EncodeRequest,
    EncodeResponse,
    ErrorResponse,
    HealthResponse,
    RateLimitResponse,
)
from app.url_service import URLShorteningService

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    counter_status = HealthStatus.HEALTHY

    try:
        await ping_db(ctx.database)
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    if not await manager.admission.store.ping():
        ctx.logger.error(f"Counter backend health check failed: {manager.admission.backend}")
        counter_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and counter_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(
        status=status,
        database=db_status,
        counter_backend=manager.admission.backend,
        counter_backend_status=counter_status,
    )


@router.post(
    "/encode",
    response_model=EncodeResponse,
    responses={422: {"model": EncodeErrorResponse}, 429: {"model": RateLimitResponse}},
    dependencies=[Depends(throttle(ENCODE_ROUTE))],
    tags=["urls"],
)
async def encode_url(
    payload: EncodeRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
):
    ctx.add_tag("encode")
    result = await service.encode(payload.original_url)

    if not result.success:
        return JSONResponse(
            status_code=422,
            content=EncodeErrorResponse(details=result.errors).model_dump(),
        )

    ctx.logger.info(
        f"Encoded {result.record.original_url} as {result.record.short_code}",
        extra={"operation": "encode", "new_mapping": result.created, "duration_ms": ctx.get_duration()},
    )
    return EncodeResponse(short_url=ctx.short_url_for(result.record.short_code))


@router.get(
    "/decode",
    response_model=DecodeResponse,
    responses={404: {"model": ErrorResponse}, 429: {"model": RateLimitResponse}},
    dependencies=[Depends(throttle(DECODE_ROUTE))],
    tags=["urls"],
)
async def decode_url(
    short_code: str = "",
    ctx: RequestContext = Depends(get_request_context),
    service: URLShorteningService = Depends(get_url_service),
):
    ctx.add_tag("decode")
    record = await service.decode(short_code)
    if record is None:
        ctx.logger.info(f"Short code not found: {short_code!r}")
        return JSONResponse(status_code=404, content=ErrorResponse(error="Short URL not found").model_dump())

    return DecodeResponse(original_url=record.original_url)
