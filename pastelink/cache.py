"""Read-through / write-invalidate cache in front of the texts table.

Flow Diagram — remember()
=========================
::
    ┌─────────────┐
    │ get(code)   │
    └──────┬──────┘
    HIT?   │
    ┌──────┴──────┐
    │ NO           │ YES
    ▼              ▼
┌──────────┐   ┌─────────┐
│producer()│   │ return  │
│(get_live)│   │ cached  │
└────┬─────┘   └─────────┘
     ▼
┌──────────┐
│ set(code)│  (only on success; NotFoundError propagates uncached)
└──────────┘

Backends
========
- ``MemoryTextCache`` (default): process-local. Each worker process holds its
  own copy, so across processes a reader can see a view count or existence
  state up to ``CACHE_TTL_SECONDS`` old. Invalidation is only as wide as the
  process that performed the write.
- ``RedisTextCache``: one cache shared by every worker; invalidation is
  global and the staleness window collapses to the Redis round-trip.
- ``NullTextCache``: used when ``CACHE_ENABLED`` is off; every read goes to
  the database.

Key Behaviours
===============
- Entries are snapshots (frozen TextRecord); staleness is checked lazily on
  access, never by a background sweeper.
- Writers call ``invalidate(code)`` right after their write commits.
- Misses are never cached, so a text cannot be "remembered" as absent.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from threading import Lock
from typing import Protocol

import redis.asyncio as redis
from prometheus_client import Counter

from pastelink.clock import Clock, SystemClock
from pastelink.config import Settings
from pastelink.enums import CacheBackend
from pastelink.schemas import TextRecord

__all__ = [
    "TextCache",
    "BaseTextCache",
    "MemoryTextCache",
    "RedisTextCache",
    "NullTextCache",
    "build_cache",
]

logger = logging.getLogger("pastelink.cache")

CACHE_HITS_TOTAL = Counter(
    "pastelink_cache_hits_total",
    "Cache hits for text lookups",
    ["backend"],
)
CACHE_MISSES_TOTAL = Counter(
    "pastelink_cache_misses_total",
    "Cache misses for text lookups",
    ["backend"],
)
CACHE_INVALIDATIONS_TOTAL = Counter(
    "pastelink_cache_invalidations_total",
    "Cache entries invalidated after a write",
    ["backend"],
)

Producer = Callable[[], Awaitable[TextRecord]]


class TextCache(Protocol):
    async def get(self, code: str) -> TextRecord | None: ...

    async def set(self, code: str, record: TextRecord, ttl: int | None = None) -> None: ...

    async def invalidate(self, code: str) -> None: ...

    async def clear(self) -> None: ...

    async def remember(self, code: str, producer: Producer, ttl: int | None = None) -> TextRecord: ...

    async def ping(self) -> bool: ...


class BaseTextCache(ABC):
    backend: str = "base"

    def __init__(self, default_ttl: int = 300):
        self.default_ttl = default_ttl

    @abstractmethod
    async def get(self, code: str) -> TextRecord | None:
        ...

    @abstractmethod
    async def set(self, code: str, record: TextRecord, ttl: int | None = None) -> None:
        ...

    @abstractmethod
    async def invalidate(self, code: str) -> None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def ping(self) -> bool:
        return True

    async def remember(self, code: str, producer: Producer, ttl: int | None = None) -> TextRecord:
        cached = await self.get(code)
        if cached is not None:
            CACHE_HITS_TOTAL.labels(backend=self.backend).inc()
            return cached

        CACHE_MISSES_TOTAL.labels(backend=self.backend).inc()
        record = await producer()
        await self.set(code, record, ttl)
        return record


class MemoryTextCache(BaseTextCache):
    """Process-local TTL map.

    Bounded by ``max_entries``: when full, expired entries are dropped first,
    then the oldest insertions.
    """

    backend = CacheBackend.MEMORY.value

    def __init__(self, default_ttl: int = 300, max_entries: int = 10_000, clock: Clock | None = None):
        super().__init__(default_ttl)
        self._max_entries = max(1, max_entries)
        self._clock = clock or SystemClock()
        self._store: dict[str, tuple[float, TextRecord]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._store)

    async def get(self, code: str) -> TextRecord | None:
        now = self._clock.monotonic()
        with self._lock:
            entry = self._store.get(code)
            if entry is None:
                return None
            expires_at, record = entry
            if now >= expires_at:
                del self._store[code]
                return None
            return record

    async def set(self, code: str, record: TextRecord, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        now = self._clock.monotonic()
        with self._lock:
            if code not in self._store and len(self._store) >= self._max_entries:
                self._evict(now)
            self._store[code] = (now + ttl, record)

    async def invalidate(self, code: str) -> None:
        with self._lock:
            self._store.pop(code, None)
        CACHE_INVALIDATIONS_TOTAL.labels(backend=self.backend).inc()

    async def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def _evict(self, now: float) -> None:
        expired = [code for code, (expires_at, _) in self._store.items() if expires_at <= now]
        for code in expired:
            del self._store[code]
        while len(self._store) >= self._max_entries:
            del self._store[next(iter(self._store))]


class RedisTextCache(BaseTextCache):
    """Cache shared across workers, stored as pydantic JSON under ``{prefix}:{code}``."""

    backend = CacheBackend.REDIS.value

    def __init__(self, client: redis.Redis, default_ttl: int = 300, prefix: str = "text"):
        super().__init__(default_ttl)
        self._client = client
        self._prefix = prefix

    def _key(self, code: str) -> str:
        return f"{self._prefix}:{code}"

    async def get(self, code: str) -> TextRecord | None:
        cached = await self._client.get(self._key(code))
        if not cached:
            return None
        try:
            return TextRecord.model_validate_json(cached)
        except ValueError as exc:
            logger.error(f"Cache deserialization error for {code}: {exc}")
            await self._client.delete(self._key(code))
            return None

    async def set(self, code: str, record: TextRecord, ttl: int | None = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        await self._client.setex(self._key(code), ttl, record.model_dump_json())

    async def invalidate(self, code: str) -> None:
        await self._client.delete(self._key(code))
        CACHE_INVALIDATIONS_TOTAL.labels(backend=self.backend).inc()

    async def clear(self) -> None:
        batch: list[str] = []
        async for key in self._client.scan_iter(match=f"{self._prefix}:*", count=500):
            batch.append(key)
            if len(batch) >= 500:
                await self._client.delete(*batch)
                batch.clear()
        if batch:
            await self._client.delete(*batch)

    async def ping(self) -> bool:
        return bool(await self._client.ping())


class NullTextCache(BaseTextCache):
    backend = "disabled"

    async def get(self, code: str) -> TextRecord | None:
        return None

    async def set(self, code: str, record: TextRecord, ttl: int | None = None) -> None:
        return None

    async def invalidate(self, code: str) -> None:
        return None

    async def clear(self) -> None:
        return None


def build_cache(settings: Settings, redis_client: redis.Redis | None = None, clock: Clock | None = None) -> BaseTextCache:
    if not settings.CACHE_ENABLED:
        return NullTextCache(settings.CACHE_TTL_SECONDS)
    if settings.CACHE_BACKEND is CacheBackend.REDIS:
        if redis_client is None:
            raise ValueError("CACHE_BACKEND=redis requires a Redis client")
        return RedisTextCache(redis_client, settings.CACHE_TTL_SECONDS, settings.CACHE_KEY_PREFIX)
    return MemoryTextCache(settings.CACHE_TTL_SECONDS, settings.CACHE_MAX_ENTRIES, clock)
