"""Dependency injection around a process-owned service manager.

ServiceManager holds everything that outlives a request (logger, cache,
rate limiter, code generator, optional Redis client). It is constructed
explicitly by the application lifespan (or by the maintenance job), stored
on ``app.state.services`` and torn down on shutdown. Nothing here is a
lazily-initialized module global.

Per request, ``get_request_context`` resolves the client address, binds the
session to it and bundles the request's database session with the shared
resources.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional

import redis.asyncio as redis
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pastelink.cache import BaseTextCache, build_cache
from pastelink.clock import Clock, SystemClock
from pastelink.codegen import CodeGenerator
from pastelink.config import Settings, get_settings
from pastelink.database import get_db
from pastelink.enums import CacheBackend
from pastelink.errors import Forbidden, RateLimited, Unauthorized
from pastelink.rate_limit import SlidingWindowRateLimiter
from pastelink.redis import close_redis, create_redis
from pastelink.security import CSRFGuard, SessionGuard, resolve_client_ip
from pastelink.text_service import TextService


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Process-owned resources shared by every request.

    The memory cache and the rate limiter live here, so they are per process:
    several workers each keep their own copy.
    """

    def __init__(self, settings: Settings | None = None, clock: Clock | None = None):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.logger = self._setup_logger()
        self.redis: Optional[redis.Redis] = None
        self.cache: BaseTextCache | None = None
        self.rate_limiter = SlidingWindowRateLimiter(clock=self.clock)
        self.code_generator = CodeGenerator(
            length=self.settings.CODE_LENGTH,
            max_attempts=self.settings.CODE_MAX_ATTEMPTS,
        )

    async def startup(self) -> None:
        """Create the cache (and its Redis client when configured)."""
        if self.settings.CACHE_ENABLED and self.settings.CACHE_BACKEND is CacheBackend.REDIS:
            self.redis = create_redis(self.settings.REDIS_URL)
        self.cache = build_cache(self.settings, self.redis, self.clock)
        self.logger.info(f"Services started (cache backend: {self.cache.backend})")

    async def shutdown(self) -> None:
        await close_redis(self.redis)
        self.redis = None
        self.cache = None
        self.rate_limiter.reset()

    def rate_limit_check(self, action: str, client_id: str, limit: int, window_seconds: float, *, is_admin: bool = False) -> bool:
        return self.rate_limiter.check(action, client_id, limit, window_seconds, is_admin=is_admin)

    def _setup_logger(self) -> logging.Logger:
        logger = logging.getLogger("pastelink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Everything one request needs.

    Attributes:
        database: Async database session (the only per-request resource)
        service_manager: Process-owned shared resources
        client_ip: Resolved client address (session binding, rate limiting)
        session: The request's session mapping
        request_id: Unique identifier for this request
        start_time: Request start timestamp
    """

    database: AsyncSession
    service_manager: ServiceManager
    client_ip: str
    session: dict[str, Any]
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def cache(self) -> BaseTextCache:
        return self.service_manager.cache

    @property
    def clock(self) -> Clock:
        return self.service_manager.clock

    @property
    def code_generator(self) -> CodeGenerator:
        return self.service_manager.code_generator

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {"request_id": self.request_id, "client_ip": self.client_ip},
        )

    @property
    def csrf(self) -> CSRFGuard:
        return CSRFGuard(self.session, enabled=self.settings.CSRF_ENABLED)

    @property
    def session_guard(self) -> SessionGuard:
        return SessionGuard(self.session)

    @property
    def is_admin(self) -> bool:
        return self.session_guard.is_admin(self.client_ip)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    return request.app.state.services


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    client_ip = resolve_client_ip(request, manager.settings)
    SessionGuard(request.session).bind(client_ip)
    return RequestContext(
        database=db,
        service_manager=manager,
        client_ip=client_ip,
        session=request.session,
    )


def get_text_service(ctx: RequestContext = Depends(get_request_context)) -> TextService:
    return TextService.from_context(ctx)


def rate_limited(action: str) -> Callable[..., Awaitable[None]]:
    """Dependency factory: admit the request or raise RateLimited."""

    async def dependency(ctx: RequestContext = Depends(get_request_context)) -> None:
        settings = ctx.settings
        allowed = ctx.service_manager.rate_limit_check(
            action,
            ctx.client_ip,
            settings.RATE_LIMIT_REQUESTS,
            settings.RATE_LIMIT_WINDOW_SECONDS,
            is_admin=ctx.is_admin,
        )
        if not allowed:
            status = ctx.service_manager.rate_limiter.status(
                action, ctx.client_ip, settings.RATE_LIMIT_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS
            )
            raise RateLimited(retry_after=max(status["reset"], 1))

    return dependency


async def require_admin(ctx: RequestContext = Depends(get_request_context)) -> None:
    if not ctx.is_admin:
        ctx.logger.warning("Admin check failed")
        raise Unauthorized()


async def require_csrf(request: Request, ctx: RequestContext = Depends(get_request_context)) -> None:
    token = request.headers.get("x-csrf-token")
    if not token and request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("csrf_token"), str):
            token = body["csrf_token"]
    if not ctx.csrf.validate(token):
        ctx.logger.warning("CSRF token rejected")
        raise Forbidden()
