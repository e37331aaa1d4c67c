"""Pydantic schemas for request/response validation in PasteLink.

This module defines Pydantic models for API input validation and output
serialization, plus the immutable ``TextRecord`` snapshot that every layer
above the database works with.

Schema Hierarchy
=================
::
    TextRecord (Snapshot, frozen)
    ├─ id, code, content, views, view_limit
    ├─ created_at, expires_at (aware UTC)
    └─ ip_address, is_encrypted

    TextCreate (Input)
    ├─ content: str
    ├─ expiry_hours: int | None
    ├─ view_limit: int | None
    ├─ is_encrypted: bool
    └─ csrf_token: str | None

    TextCreated (Output)   TextView (Output)   TextSummary (Output)
    StatsResponse (Output) SweepResponse (Output)
    LoginRequest (Input)   CSRFTokenResponse (Output)
    StatusResponse (Output) HealthResponse (Output)

How to Use
===========
**Step 1 — Input parsing**::
    @router.post("/api/texts")
    async def create_text(payload: TextCreate):
        # types are checked here; ranges are checked by the store
        ...

**Step 2 — Snapshots from ORM rows**::
    record = TextRecord.model_validate(orm_text)

**Step 3 — Cache payloads**::
    raw = record.model_dump_json()
    record = TextRecord.model_validate_json(raw)

Key Behaviours
===============
- TextRecord is frozen: a cached snapshot can never be mutated in place.
- Datetimes on TextRecord are normalized to aware UTC whatever the backend
  returned.
- Range checks on expiry/view limit live in the store so that HTTP and
  non-HTTP callers get the same ValidationError.

Classes:
    TextRecord:  Immutable snapshot of a stored text.
    TextStats:  Aggregate counters over the texts table.
    SweepResult:  Outcome of a dead-row sweep.
"""

import datetime
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pastelink.clock import as_utc
from pastelink.enums import HealthStatus

__all__ = [
    "TextRecord",
    "TextStats",
    "SweepResult",
    "TextCreate",
    "TextCreated",
    "TextView",
    "TextSummary",
    "StatsResponse",
    "SweepResponse",
    "LoginRequest",
    "CSRFTokenResponse",
    "StatusResponse",
    "HealthResponse",
]


class TextRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    code: str
    content: str
    views: int = 0
    view_limit: int | None = None
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None
    ip_address: str = ""
    is_encrypted: bool = False

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_utc(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return as_utc(v) if v is not None else None

    @property
    def remaining_views(self) -> int | None:
        if self.view_limit is None:
            return None
        return max(self.view_limit - self.views, 0)


@dataclass(frozen=True)
class TextStats:
    total_records: int = 0
    total_views: int = 0
    expiring_count: int = 0
    limited_count: int = 0
    recent_count: int = 0
    encrypted_count: int = 0


@dataclass(frozen=True)
class SweepResult:
    deleted_count: int
    # None when the backend cannot report which rows went away.
    deleted_codes: tuple[str, ...] | None


class TextCreate(BaseModel):
    content: str
    expiry_hours: int | None = None
    view_limit: int | None = None
    is_encrypted: bool = False
    csrf_token: str | None = None


class TextCreated(BaseModel):
    status: str = "success"
    id: int
    code: str
    url: str
    expires_at: datetime.datetime | None
    view_limit: int | None


class TextView(BaseModel):
    code: str
    content: str
    views: int
    view_limit: int | None
    remaining_views: int | None
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    is_encrypted: bool

    @classmethod
    def from_record(cls, record: TextRecord) -> "TextView":
        return cls(
            code=record.code,
            content=record.content,
            views=record.views,
            view_limit=record.view_limit,
            remaining_views=record.remaining_views,
            created_at=record.created_at,
            expires_at=record.expires_at,
            is_encrypted=record.is_encrypted,
        )


class TextSummary(BaseModel):
    """Admin listing row; content is truncated to a preview."""

    id: int
    code: str
    preview: str
    views: int
    view_limit: int | None
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    ip_address: str
    is_encrypted: bool

    @classmethod
    def from_record(cls, record: TextRecord, preview_length: int = 100) -> "TextSummary":
        return cls(
            id=record.id,
            code=record.code,
            preview=record.content[:preview_length],
            views=record.views,
            view_limit=record.view_limit,
            created_at=record.created_at,
            expires_at=record.expires_at,
            ip_address=record.ip_address,
            is_encrypted=record.is_encrypted,
        )


class StatsResponse(BaseModel):
    total_records: int
    total_views: int
    expiring_count: int
    limited_count: int
    recent_count: int
    encrypted_count: int


class SweepResponse(BaseModel):
    status: str = "success"
    deleted_count: int


class LoginRequest(BaseModel):
    user: str = Field(..., max_length=255)
    password: str = Field(..., max_length=1024)


class CSRFTokenResponse(BaseModel):
    csrf_token: str


class StatusResponse(BaseModel):
    status: str = "success"


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
