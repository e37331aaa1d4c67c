"""PasteLink Service Layer - Text Lifecycle Operations

This module ties the record store, the read cache and the eviction policy
together into the operations the API layer and maintenance jobs call.

Architecture Overview
=====================
::
    ┌──────────────────────────────────────────────────────────────┐
    │                        TextService                           │
    │  ┌────────────────┐  ┌────────────────┐  ┌────────────────┐  │
    │  │ CodeGenerator  │  │   TextCache    │  │ EvictionPolicy │  │
    │  │ • CSPRNG codes │  │ • remember()   │  │ • is_live()    │  │
    │  │ • bounded retry│  │ • invalidate() │  │ • sweep()      │  │
    │  └────────────────┘  └────────────────┘  └────────────────┘  │
    └──────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌──────────────────────────────────────────────────────────────┐
    │                 RecordStore (texts table)                    │
    └──────────────────────────────────────────────────────────────┘

Request Flow Diagrams
=====================

Text View Flow
--------------
::
    ┌─────────────┐
    │ GET /api/   │
    │ texts/:code │
    └──────┬──────┘
           ▼
    ┌─────────────┐     MISS     ┌─────────────┐
    │ cache.get   ├─────────────►│ get_live    │
    └──────┬──────┘              │ (SELECT)    │
       HIT │                     └──────┬──────┘
           ▼                            ▼
    ┌─────────────┐              ┌─────────────┐
    │ is_live?    │◄─────────────┤ cache.set   │
    └──────┬──────┘              └─────────────┘
           ▼
    ┌─────────────┐
    │ views + 1   │  (atomic UPDATE)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ invalidate  │
    └─────────────┘

Key Behaviours
==============
- A cached snapshot is re-checked with ``is_live`` before it is served, so
  a text that expires while cached is still reported as not found.
- Every write (view, delete, sweep) invalidates the affected cache entries
  after the database commit.
- Codes that are not 6-10 alphanumerics are rejected without a query.
"""

import logging
import re
import time

from prometheus_client import Counter, Histogram

from pastelink.cache import BaseTextCache
from pastelink.clock import Clock, SystemClock
from pastelink.config import Settings
from pastelink.enums import RequestStatus
from pastelink.errors import CapacityExhausted, NotFoundError, ValidationError
from pastelink.eviction import EvictionPolicy, is_live
from pastelink.schemas import TextRecord, TextStats
from pastelink.store import RecordStore, validate_new_text

__all__ = ["TextService", "CODE_PATTERN"]

CODE_PATTERN = re.compile(r"^[0-9a-zA-Z]{6,10}$")

# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

TEXT_CREATION_REQUESTS_TOTAL = Counter(
    "pastelink_creation_requests_total",
    "Total text creation requests",
    ["status"],
)
TEXT_LOOKUP_REQUESTS_TOTAL = Counter(
    "pastelink_lookup_requests_total",
    "Total text lookup requests",
    ["status"],
)
TEXT_VIEWS_TOTAL = Counter(
    "pastelink_views_total",
    "Views counted against texts",
)
TEXT_DELETIONS_TOTAL = Counter(
    "pastelink_deletions_total",
    "Texts deleted explicitly",
)
TEXT_CREATION_DURATION = Histogram(
    "pastelink_creation_duration_seconds",
    "Time taken to create texts",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)
TEXT_LOOKUP_DURATION = Histogram(
    "pastelink_lookup_duration_seconds",
    "Time taken to look up texts",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)


class TextService:
    """Text lifecycle operations for one unit of work.

    Built per request (``from_context``) or per maintenance run; the store
    wraps that unit's database session while the cache is shared by the
    whole process.

    Example:
        >>> service = TextService.from_context(ctx)
        >>> record = await service.create_text("hello world", ttl_hours=1, view_limit=2)
        >>> viewed = await service.view_text(record.code)
    """

    def __init__(
        self,
        store: RecordStore,
        cache: BaseTextCache,
        settings: Settings,
        *,
        clock: Clock | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self._store = store
        self._cache = cache
        self._settings = settings
        self._clock = clock or SystemClock()
        self._logger = logger or logging.getLogger("pastelink")
        self._eviction = EvictionPolicy(cache)

    @classmethod
    def from_context(cls, ctx) -> "TextService":
        store = RecordStore(ctx.database, ctx.code_generator, ctx.settings, ctx.clock)
        return cls(store, ctx.cache, ctx.settings, clock=ctx.clock, logger=ctx.logger)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_text(
        self,
        content: str,
        ttl_hours: int | None = None,
        view_limit: int | None = None,
        is_encrypted: bool = False,
        client_ip: str = "",
    ) -> TextRecord:
        start_time = time.perf_counter()
        try:
            validate_new_text(content, ttl_hours, view_limit, self._settings)
            record = await self._store.create(content, ttl_hours, view_limit, is_encrypted, client_ip)
        except ValidationError as exc:
            TEXT_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.VALIDATION_ERROR).inc()
            self._logger.warning(f"Text creation rejected: {exc.message}")
            raise
        except CapacityExhausted:
            TEXT_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.CAPACITY_EXHAUSTED).inc()
            raise
        except Exception as exc:
            TEXT_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Text creation error: {exc}")
            raise
        finally:
            TEXT_CREATION_DURATION.observe(time.perf_counter() - start_time)

        TEXT_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        self._logger.info(
            f"Text created: {record.code}",
            extra={"operation": "create_text", "text_id": record.id, "has_expiry": ttl_hours is not None},
        )
        return record

    async def get_text(self, code: str) -> TextRecord:
        """Return the live text for ``code`` through the cache.

        Raises:
            NotFoundError: unknown, expired, exhausted or deleted.
        """
        start_time = time.perf_counter()
        try:
            if not CODE_PATTERN.match(code):
                raise NotFoundError()
            record = await self._cache.remember(code, lambda: self._store.get_live(code))
            if not is_live(record, self._clock.now()):
                await self._cache.invalidate(code)
                raise NotFoundError()
        except NotFoundError:
            TEXT_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.NOT_FOUND).inc()
            self._logger.debug(f"Text not found: {code}")
            raise
        except Exception as exc:
            TEXT_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            self._logger.error(f"Text lookup error for {code}: {exc}")
            raise
        finally:
            TEXT_LOOKUP_DURATION.observe(time.perf_counter() - start_time)

        TEXT_LOOKUP_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
        return record

    async def increment_views(self, code: str) -> None:
        try:
            await self._store.increment_views(code)
        finally:
            await self._cache.invalidate(code)
        TEXT_VIEWS_TOTAL.inc()

    async def view_text(self, code: str) -> TextRecord:
        """Fetch a text and count the view; returns the post-view snapshot."""
        record = await self.get_text(code)
        await self.increment_views(code)
        return record.model_copy(update={"views": record.views + 1})

    async def delete_text(self, text_id: int) -> None:
        record = await self._store.delete_by_id(text_id)
        await self._cache.invalidate(record.code)
        TEXT_DELETIONS_TOTAL.inc()
        self._logger.info(f"Text deleted: {record.code}", extra={"operation": "delete_text", "text_id": text_id})

    async def sweep_expired(self) -> int:
        return await self._eviction.sweep(self._store)

    async def get_stats(self) -> TextStats:
        return await self._store.stats()

    async def list_texts(self, limit: int = 50, offset: int = 0) -> list[TextRecord]:
        return await self._store.list_recent(limit, offset)
