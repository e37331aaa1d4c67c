"""Liveness rules and the dead-record sweep.

A text is *live* iff::

    (expires_at is None or now < expires_at) and (view_limit is None or views < view_limit)

The rule exists in exactly two renderings, kept side by side here: ``is_live``
for snapshots already in memory (cache hits) and ``live_clause`` for queries.
``dead_clause`` is defined as the negation of ``live_clause`` so that the read
path and the sweep can never select overlapping rows.

Flow Diagram — EvictionPolicy.sweep()
=====================================
::
    ┌──────────────────┐
    │ store.sweep_dead │  DELETE ... WHERE NOT live
    └────────┬─────────┘
             ▼
      codes reported?
    ┌────────┴────────┐
    │ YES             │ NO (and rows deleted)
    ▼                 ▼
┌─────────────┐  ┌─────────────┐
│ invalidate  │  │ cache.clear │
│ each code   │  │ ()          │
└─────────────┘  └─────────────┘

Key Behaviours
===============
- Dead rows are never returned by reads, whether they come from the cache or
  the database, and are removed only by the sweep.
- The sweep is idempotent: a second run over the same state deletes nothing.
- Falling back to a full cache clear is acceptable because sweeps run
  rarely (hourly) compared with reads.
"""

import datetime
import logging
from typing import TYPE_CHECKING

from prometheus_client import Counter
from sqlalchemy import ColumnElement, and_, not_, or_

from pastelink.cache import TextCache
from pastelink.clock import as_utc
from pastelink.models import Text
from pastelink.schemas import TextRecord

if TYPE_CHECKING:
    from pastelink.store import RecordStore

__all__ = ["is_live", "live_clause", "dead_clause", "EvictionPolicy"]

logger = logging.getLogger("pastelink.eviction")

SWEEP_RUNS_TOTAL = Counter(
    "pastelink_sweep_runs_total",
    "Dead-record sweeps executed",
)
SWEEP_DELETED_TOTAL = Counter(
    "pastelink_sweep_deleted_total",
    "Texts deleted by the sweep",
)


def is_live(record: TextRecord, now: datetime.datetime) -> bool:
    if record.expires_at is not None and as_utc(now) >= as_utc(record.expires_at):
        return False
    if record.view_limit is not None and record.views >= record.view_limit:
        return False
    return True


def live_clause(now: datetime.datetime) -> ColumnElement[bool]:
    return and_(
        or_(Text.expires_at.is_(None), Text.expires_at > now),
        or_(Text.view_limit.is_(None), Text.views < Text.view_limit),
    )


def dead_clause(now: datetime.datetime) -> ColumnElement[bool]:
    return not_(live_clause(now))


class EvictionPolicy:
    def __init__(self, cache: TextCache):
        self._cache = cache

    async def sweep(self, store: "RecordStore") -> int:
        """Delete every dead text and drop it from the cache.

        Returns:
            int: number of rows deleted.
        """
        result = await store.sweep_dead()
        SWEEP_RUNS_TOTAL.inc()
        SWEEP_DELETED_TOTAL.inc(result.deleted_count)

        if result.deleted_codes is not None:
            for code in result.deleted_codes:
                await self._cache.invalidate(code)
        elif result.deleted_count > 0:
            logger.info("Sweep could not report deleted codes; clearing the whole cache")
            await self._cache.clear()

        logger.info(f"Sweep deleted {result.deleted_count} dead texts")
        return result.deleted_count
