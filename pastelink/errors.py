"""Error taxonomy for PasteLink.

Every failure the core can report is a ``PasteLinkError`` carrying a stable
machine-readable code and the HTTP status the API layer answers with.

Error Hierarchy
===============
::
    PasteLinkError
    ├─ ValidationError      400 / 413  bad content length, ttl or view limit
    ├─ NotFoundError        404        unknown, expired, exhausted or deleted
    ├─ Unauthorized         401        admin check or login failed
    ├─ Forbidden            403        CSRF token missing or mismatched
    ├─ RateLimited          429        sliding window exceeded
    ├─ CapacityExhausted    503        no free code within the attempt bound
    └─ StoreError           500        database unreachable or unexpected

Key Behaviours
===============
- NotFoundError never says *why* a record is absent, so an expired code
  cannot be told apart from one that never existed.
- CapacityExhausted is an operator problem (the code space is nearly full),
  not a per-request one; it is logged at CRITICAL where it is raised.
- A unique-constraint violation on insert is a collision to retry and is
  never surfaced as StoreError.
"""

from typing import Any

__all__ = [
    "PasteLinkError",
    "ValidationError",
    "NotFoundError",
    "Unauthorized",
    "Forbidden",
    "RateLimited",
    "CapacityExhausted",
    "StoreError",
]


class PasteLinkError(Exception):
    """Base exception for all PasteLink errors."""

    code: str = "error"
    http_status: int = 500

    def __init__(self, message: str, *, code: str | None = None, http_status: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status

    def to_response(self) -> dict[str, Any]:
        """Convert to the REST error envelope."""
        return {"status": "error", "code": self.code, "message": self.message}


class ValidationError(PasteLinkError):
    code = "validation_error"
    http_status = 400


class NotFoundError(PasteLinkError):
    code = "not_found"
    http_status = 404

    def __init__(self, message: str = "Text not found"):
        super().__init__(message)


class Unauthorized(PasteLinkError):
    code = "unauthorized"
    http_status = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class Forbidden(PasteLinkError):
    code = "csrf_token_invalid"
    http_status = 403

    def __init__(self, message: str = "Invalid CSRF token"):
        super().__init__(message)


class RateLimited(PasteLinkError):
    code = "rate_limited"
    http_status = 429

    def __init__(self, message: str = "Too many requests", retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class CapacityExhausted(PasteLinkError):
    code = "capacity_exhausted"
    http_status = 503


class StoreError(PasteLinkError):
    code = "store_error"
    http_status = 500
