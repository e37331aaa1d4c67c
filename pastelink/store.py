"""Persistent CRUD over the texts table.

RecordStore is the only component that talks to the database. It is the
authority on whether a code exists, on the liveness predicate at the data
layer, and on the view counter.

Flow Diagram — create()
=======================
::
    ┌──────────────────┐
    │ validate_new_text│──── ValidationError (nothing written)
    └────────┬─────────┘
             ▼
    ┌──────────────────┐
    │ generator.       │◄─────────────────────┐
    │ generate(exists) │                      │ collision
    └────────┬─────────┘                      │ (code now exists)
             ▼                                │
    ┌──────────────────┐   IntegrityError ┌───┴──────────┐
    │ INSERT + COMMIT  ├─────────────────►│ rollback     │
    └────────┬─────────┘                  └──────────────┘
             ▼
    ┌──────────────────┐
    │ TextRecord       │
    └──────────────────┘

Key Behaviours
===============
- Every write is one statement in one transaction; nothing is ever half
  written.
- ``get_live`` is a single filtered SELECT. It never deletes; removing dead
  rows is the sweep's job.
- ``increment_views`` is a single ``views = views + 1`` UPDATE guarded by the
  liveness predicate, so K concurrent views add exactly K and a view limit
  cannot be overshot by racing readers.
- Database failures (driver errors, refused connections, timeouts) are
  rolled back, logged and re-raised as StoreError.
  A unique-constraint violation on ``code`` is a collision and is retried.
"""

import datetime
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pastelink.clock import Clock, SystemClock
from pastelink.codegen import CodeGenerator
from pastelink.config import Settings, get_settings
from pastelink.errors import NotFoundError, StoreError, ValidationError
from pastelink.eviction import dead_clause, live_clause
from pastelink.models import Text
from pastelink.schemas import SweepResult, TextRecord, TextStats

__all__ = ["RecordStore", "validate_new_text"]

logger = logging.getLogger("pastelink.store")

RECENT_WINDOW = datetime.timedelta(days=7)
MAX_LIST_LIMIT = 500


def validate_new_text(content: str, ttl_hours: int | None, view_limit: int | None, settings: Settings) -> None:
    """Reject a text before anything touches the database.

    Raises:
        ValidationError: empty or oversized content, or an out-of-range
            expiry / view limit.
    """
    if not content:
        raise ValidationError("Content must not be empty", code="empty_content")
    if len(content) > settings.MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Content exceeds {settings.MAX_CONTENT_LENGTH} characters",
            code="content_too_long",
            http_status=413,
        )
    if ttl_hours is not None and not 0 < ttl_hours <= settings.MAX_EXPIRY_HOURS:
        raise ValidationError(
            f"Expiry must be between 1 and {settings.MAX_EXPIRY_HOURS} hours",
            code="invalid_expiry",
        )
    if view_limit is not None and not 0 < view_limit <= settings.MAX_VIEW_LIMIT:
        raise ValidationError(
            f"View limit must be between 1 and {settings.MAX_VIEW_LIMIT}",
            code="invalid_view_limit",
        )


class RecordStore:
    def __init__(
        self,
        session: AsyncSession,
        generator: CodeGenerator | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        self._db = session
        self._settings = settings or get_settings()
        self._generator = generator or CodeGenerator(
            length=self._settings.CODE_LENGTH,
            max_attempts=self._settings.CODE_MAX_ATTEMPTS,
        )
        self._clock = clock or SystemClock()

    # ========================================================================
    # WRITES
    # ========================================================================

    async def create(
        self,
        content: str,
        ttl_hours: int | None = None,
        view_limit: int | None = None,
        is_encrypted: bool = False,
        client_ip: str = "",
    ) -> TextRecord:
        validate_new_text(content, ttl_hours, view_limit, self._settings)

        now = self._clock.now()
        expires_at = now + datetime.timedelta(hours=ttl_hours) if ttl_hours is not None else None

        async with self._store_errors("create"):
            for _ in range(self._generator.max_attempts):
                code = await self._generator.generate(self.code_exists)
                text = Text(
                    code=code,
                    content=content,
                    views=0,
                    view_limit=view_limit,
                    created_at=now,
                    expires_at=expires_at,
                    ip_address=client_ip[:45],
                    is_encrypted=is_encrypted,
                )
                self._db.add(text)
                try:
                    await self._db.commit()
                except IntegrityError as exc:
                    await self._db.rollback()
                    if not await self.code_exists(code):
                        raise StoreError("Insert rejected by the database") from exc
                    logger.warning(f"Code collision on insert for {code}; retrying")
                    continue
                await self._db.refresh(text)
                return TextRecord.model_validate(text)

        self._generator.exhausted()

    async def increment_views(self, code: str) -> None:
        """Add one view to a live text.

        Raises:
            NotFoundError: no live text has this code.
        """
        stmt = (
            update(Text)
            .where(Text.code == code, live_clause(self._clock.now()))
            .values(views=Text.views + 1)
            .execution_options(synchronize_session=False)
        )
        async with self._store_errors("increment_views", code=code):
            result = await self._db.execute(stmt)
            await self._db.commit()
        if result.rowcount == 0:
            raise NotFoundError()

    async def delete_by_code(self, code: str) -> TextRecord:
        return await self._delete_one(Text.code == code, "delete_by_code", code=code)

    async def delete_by_id(self, text_id: int) -> TextRecord:
        return await self._delete_one(Text.id == text_id, "delete_by_id", text_id=text_id)

    async def sweep_dead(self) -> SweepResult:
        """Delete every row that fails the liveness predicate, in one statement."""
        stmt = delete(Text).where(dead_clause(self._clock.now()))
        async with self._store_errors("sweep_dead"):
            if self._supports_delete_returning():
                result = await self._db.execute(
                    stmt.returning(Text.code),
                    execution_options={"synchronize_session": False},
                )
                codes = tuple(result.scalars().all())
                await self._db.commit()
                return SweepResult(deleted_count=len(codes), deleted_codes=codes)

            result = await self._db.execute(stmt, execution_options={"synchronize_session": False})
            await self._db.commit()
            return SweepResult(deleted_count=result.rowcount, deleted_codes=None)

    # ========================================================================
    # READS
    # ========================================================================

    async def get_live(self, code: str) -> TextRecord:
        """Return the live text for ``code``.

        Raises:
            NotFoundError: unknown, expired, exhausted or deleted; the caller
                cannot tell which.
        """
        stmt = (
            select(Text)
            .where(Text.code == code, live_clause(self._clock.now()))
            .execution_options(populate_existing=True)
        )
        async with self._store_errors("get_live", code=code):
            result = await self._db.execute(stmt)
            text = result.scalar_one_or_none()
        if text is None:
            raise NotFoundError()
        return TextRecord.model_validate(text)

    async def code_exists(self, code: str) -> bool:
        """True if any row, live or dead, uses ``code``."""
        async with self._store_errors("code_exists", code=code):
            result = await self._db.execute(select(Text.id).where(Text.code == code).limit(1))
            return result.scalar_one_or_none() is not None

    async def stats(self) -> TextStats:
        week_ago = self._clock.now() - RECENT_WINDOW
        stmt = select(
            func.count(Text.id),
            func.coalesce(func.sum(Text.views), 0),
            func.count(Text.expires_at),
            func.count(Text.view_limit),
            func.count(case((Text.created_at >= week_ago, 1))),
            func.count(case((Text.is_encrypted.is_(True), 1))),
        )
        async with self._store_errors("stats"):
            row = (await self._db.execute(stmt)).one()
        total, views, expiring, limited, recent, encrypted = row
        return TextStats(
            total_records=int(total or 0),
            total_views=int(views or 0),
            expiring_count=int(expiring or 0),
            limited_count=int(limited or 0),
            recent_count=int(recent or 0),
            encrypted_count=int(encrypted or 0),
        )

    async def list_recent(self, limit: int = 50, offset: int = 0) -> list[TextRecord]:
        """Newest texts first, dead or alive (admin listing)."""
        limit = min(max(limit, 1), MAX_LIST_LIMIT)
        offset = max(offset, 0)
        stmt = (
            select(Text)
            .order_by(Text.created_at.desc(), Text.id.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        async with self._store_errors("list_recent"):
            result = await self._db.execute(stmt)
            return [TextRecord.model_validate(text) for text in result.scalars().all()]

    # ========================================================================
    # PRIVATE HELPERS
    # ========================================================================

    async def _delete_one(self, condition, operation: str, **context) -> TextRecord:
        async with self._store_errors(operation, **context):
            result = await self._db.execute(
                select(Text).where(condition).execution_options(populate_existing=True)
            )
            text = result.scalar_one_or_none()
            if text is None:
                raise NotFoundError()
            record = TextRecord.model_validate(text)
            deleted = await self._db.execute(
                delete(Text).where(Text.id == record.id),
                execution_options={"synchronize_session": False},
            )
            await self._db.commit()
        if deleted.rowcount == 0:
            raise NotFoundError()
        return record

    def _supports_delete_returning(self) -> bool:
        return bool(self._db.get_bind().dialect.delete_returning)

    @asynccontextmanager
    async def _store_errors(self, operation: str, **context) -> AsyncIterator[None]:
        try:
            yield
        except (SQLAlchemyError, OSError) as exc:
            logger.error(f"Store operation {operation} failed: {exc}", extra={"operation": operation, **context})
            try:
                await self._db.rollback()
            except (SQLAlchemyError, OSError) as rollback_exc:
                logger.error(f"Rollback after {operation} failed: {rollback_exc}")
            raise StoreError(f"Store operation {operation} failed") from exc
