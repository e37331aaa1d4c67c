"""FastAPI route definitions for the PasteLink REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    GET    /api/csrf-token
        └─ CSRFTokenResponse (200)

    POST   /api/texts                 [rate limit, CSRF]
        ├─ TextCreate (request body)
        └─ TextCreated (201) or 400/403/413/429/503

    GET    /api/texts/:code           [rate limit]
        └─ TextView (200, counts one view) or 404/429

    POST   /api/login                 [rate limit]
        └─ StatusResponse (200) or 401/429

    POST   /api/logout
        └─ StatusResponse (200)

    GET    /api/admin/texts           [admin]
    GET    /api/admin/stats           [admin]
    DELETE /api/admin/texts/:id       [admin, CSRF]
    POST   /api/admin/sweep           [admin, CSRF]

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Request     │  client IP resolved, session bound to it
    │ Context     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Guards      │  rate limit → admin → CSRF
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ TextService │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serialize   │
    │ (Pydantic)  │
    └─────────────┘

Key Behaviours
===============
- Guards run as route dependencies, before the handler body, so a rejected
  request never reaches the store.
- Errors are raised as PasteLinkError subclasses and rendered by
  ``pastelink.error_handlers``.
- Unknown, expired, exhausted and deleted texts all answer 404 alike.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import text

from pastelink.dependencies import (
    RequestContext,
    get_request_context,
    get_text_service,
    rate_limited,
    require_admin,
    require_csrf,
)
from pastelink.enums import HealthStatus
from pastelink.errors import Unauthorized
from pastelink.schemas import (
    CSRFTokenResponse,
    HealthResponse,
    LoginRequest,
    StatsResponse,
    StatusResponse,
    SweepResponse,
    TextCreate,
    TextCreated,
    TextSummary,
    TextView,
)
from pastelink.security import verify_admin_credentials
from pastelink.text_service import TextService

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        await ctx.database.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        if not await ctx.cache.ping():
            cache_status = HealthStatus.UNHEALTHY
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    ctx.logger.debug(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.get("/api/csrf-token", response_model=CSRFTokenResponse, tags=["security"])
async def csrf_token(ctx: RequestContext = Depends(get_request_context)) -> CSRFTokenResponse:
    return CSRFTokenResponse(csrf_token=ctx.csrf.issue())


@router.post(
    "/api/texts",
    response_model=TextCreated,
    status_code=201,
    tags=["texts"],
    dependencies=[Depends(rate_limited("create")), Depends(require_csrf)],
)
async def create_text(
    payload: TextCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: TextService = Depends(get_text_service),
) -> TextCreated:
    ctx.logger.info(
        "Text creation requested",
        extra={
            "operation": "create_text",
            "content_length": len(payload.content),
            "expiry_hours": payload.expiry_hours,
            "view_limit": payload.view_limit,
        },
    )
    record = await service.create_text(
        payload.content,
        ttl_hours=payload.expiry_hours,
        view_limit=payload.view_limit,
        is_encrypted=payload.is_encrypted,
        client_ip=ctx.client_ip,
    )
    ctx.logger.info(
        f"Text stored: {record.code}",
        extra={"operation": "create_text", "text_id": record.id, "duration_ms": ctx.get_duration()},
    )
    return TextCreated(
        id=record.id,
        code=record.code,
        url=f"{ctx.settings.BASE_URL}/{record.code}",
        expires_at=record.expires_at,
        view_limit=record.view_limit,
    )


@router.get(
    "/api/texts/{code}",
    response_model=TextView,
    tags=["texts"],
    dependencies=[Depends(rate_limited("view"))],
)
async def view_text(
    code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: TextService = Depends(get_text_service),
) -> TextView:
    record = await service.view_text(code)
    ctx.logger.info(
        f"Text viewed: {code}",
        extra={"operation": "view_text", "views": record.views, "duration_ms": ctx.get_duration()},
    )
    return TextView.from_record(record)


@router.post(
    "/api/login",
    response_model=StatusResponse,
    tags=["admin"],
    dependencies=[Depends(rate_limited("login"))],
)
async def login(payload: LoginRequest, ctx: RequestContext = Depends(get_request_context)) -> StatusResponse:
    if not verify_admin_credentials(payload.user, payload.password, ctx.settings):
        ctx.logger.warning("Failed admin login attempt", extra={"operation": "login"})
        raise Unauthorized("Invalid credentials")
    ctx.session_guard.login(ctx.client_ip)
    ctx.logger.info("Admin logged in", extra={"operation": "login"})
    return StatusResponse()


@router.post("/api/logout", response_model=StatusResponse, tags=["admin"])
async def logout(ctx: RequestContext = Depends(get_request_context)) -> StatusResponse:
    ctx.session_guard.logout()
    return StatusResponse()


@router.get(
    "/api/admin/texts",
    response_model=list[TextSummary],
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)
async def list_texts(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: TextService = Depends(get_text_service),
) -> list[TextSummary]:
    records = await service.list_texts(limit, offset)
    return [TextSummary.from_record(record) for record in records]


@router.get(
    "/api/admin/stats",
    response_model=StatsResponse,
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)
async def get_stats(service: TextService = Depends(get_text_service)) -> StatsResponse:
    stats = await service.get_stats()
    return StatsResponse(
        total_records=stats.total_records,
        total_views=stats.total_views,
        expiring_count=stats.expiring_count,
        limited_count=stats.limited_count,
        recent_count=stats.recent_count,
        encrypted_count=stats.encrypted_count,
    )


@router.delete(
    "/api/admin/texts/{text_id}",
    response_model=StatusResponse,
    tags=["admin"],
    dependencies=[Depends(require_admin), Depends(require_csrf)],
)
async def delete_text(
    text_id: int,
    ctx: RequestContext = Depends(get_request_context),
    service: TextService = Depends(get_text_service),
) -> StatusResponse:
    await service.delete_text(text_id)
    ctx.logger.info(f"Admin deleted text {text_id}", extra={"operation": "delete_text"})
    return StatusResponse()


@router.post(
    "/api/admin/sweep",
    response_model=SweepResponse,
    tags=["admin"],
    dependencies=[Depends(require_admin), Depends(require_csrf)],
)
async def sweep(
    ctx: RequestContext = Depends(get_request_context),
    service: TextService = Depends(get_text_service),
) -> SweepResponse:
    deleted = await service.sweep_expired()
    ctx.logger.info(f"Admin sweep deleted {deleted} texts", extra={"operation": "sweep"})
    return SweepResponse(deleted_count=deleted)
