"""Global exception handlers for the PasteLink API.

Invariants:
    - PasteLinkError → ``{"status": "error", "code", "message"}`` with the
      error's own HTTP status
    - RateLimited carries a Retry-After header
    - RequestValidationError → 400 with field-level details
    - Exception (catch-all) → 500, never leaks internal details
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pastelink.errors import CapacityExhausted, NotFoundError, PasteLinkError, RateLimited

logger = logging.getLogger("pastelink.errors")


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_pastelink_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_pastelink_error_handler(app: FastAPI) -> None:
    @app.exception_handler(PasteLinkError)
    async def pastelink_error_handler(request: Request, exc: PasteLinkError):
        if isinstance(exc, CapacityExhausted):
            logger.critical(f"Capacity exhausted on {request.url.path}: {exc.message}")
        elif isinstance(exc, NotFoundError):
            logger.debug(f"Not found: {request.url.path}")
        elif exc.http_status >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}", extra={"error_code": exc.code, "path": request.url.path})
        else:
            logger.warning(f"{type(exc).__name__}: {exc.message}", extra={"error_code": exc.code, "path": request.url.path})

        headers = None
        if isinstance(exc, RateLimited) and exc.retry_after is not None:
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.http_status, content=exc.to_response(), headers=headers)


def _register_validation_error_handler(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "status": "error",
                "code": "validation_error",
                "message": "Invalid request data",
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                        "type": e["type"],
                    }
                    for e in exc.errors()
                ],
            },
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all, never leaks internal details."""
        logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "code": "internal_error", "message": "An unexpected error occurred"},
        )
