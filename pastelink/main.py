"""FastAPI application entry point for the PasteLink text store.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn     │
    │  startup     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Create app,  │
    │ middleware,  │
    │ routes       │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ init_db()    │
    │ services     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │
    │ services     │
    │ close_db()   │
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn pastelink.main:app --host 0.0.0.0 --port 8080

**Step 2 — Make API calls**::
    # Health check
    curl http://localhost:8080/health

    # Fetch a CSRF token, then store a text with the same cookie jar
    curl -c jar -b jar http://localhost:8080/api/csrf-token
    curl -c jar -b jar -X POST http://localhost:8080/api/texts \
         -H "Content-Type: application/json" \
         -H "X-CSRF-Token: <token>" \
         -d '{"content": "hello", "expiry_hours": 24}'

Key Behaviours
===============
- Database tables are created automatically on startup.
- ServiceManager (cache, rate limiter, Redis client) is stored on
  ``app.state.services`` and shut down with the app.
- Sessions are signed cookies (SessionMiddleware); ``SESSION_SECURE`` marks
  them HTTPS-only.
- Security headers are added to every response when ``SECURITY_HEADERS`` is on.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.middleware.sessions import SessionMiddleware

from pastelink.config import get_settings
from pastelink.database import close_db, init_db
from pastelink.dependencies import ServiceManager
from pastelink.error_handlers import register_error_handlers
from pastelink.routes import router
from pastelink.security import SECURITY_HEADERS

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    services = ServiceManager(settings)
    await services.startup()
    app.state.services = services
    yield
    # Shutdown
    await services.shutdown()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Share text through short codes, with expiry and view limits",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    if settings.SECURITY_HEADERS:
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
    return response


app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET_KEY,
    session_cookie=settings.SESSION_COOKIE_NAME,
    max_age=settings.SESSION_TIMEOUT_SECONDS,
    same_site="strict",
    https_only=settings.SESSION_SECURE,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.BASE_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "X-CSRF-Token"],
)

register_error_handlers(app)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
