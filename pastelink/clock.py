"""Clock abstraction for expiry, cache and rate-limit timing.

Production code uses SystemClock. Tests inject a controllable clock so that
expiry and sliding-window behaviour can be exercised without sleeping.

Two readings are exposed because they serve different purposes:

- ``now()``: timezone-aware UTC wall time, compared against the persisted
  ``created_at`` / ``expires_at`` columns.
- ``monotonic()``: seconds from an arbitrary origin, immune to wall-clock
  adjustments; used for process-local TTLs and rate-limit windows.
"""

import datetime
import time
from typing import Protocol

__all__ = ["Clock", "SystemClock", "as_utc", "utc_now"]


class Clock(Protocol):
    def now(self) -> datetime.datetime: ...

    def monotonic(self) -> float: ...


class SystemClock:
    """Production clock backed by the system time sources."""

    def now(self) -> datetime.datetime:
        return utc_now()

    def monotonic(self) -> float:
        return time.monotonic()


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime) -> datetime.datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; everything written by the store is UTC, so naive means UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc)
