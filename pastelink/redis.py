"""Redis client management for the shared cache backend.

Redis is only contacted when ``CACHE_BACKEND=redis``. The client is created
and closed by ServiceManager alongside the rest of the process-owned
resources; there is no module-level client.

How to Use
===========
**Step 1 — Create on startup**::
    client = create_redis(settings.REDIS_URL)

**Step 2 — Hand it to the cache**::
    cache = build_cache(settings, redis_client=client)

**Step 3 — Cleanup on shutdown**::
    await close_redis(client)

Key Behaviours
===============
- The client connects lazily on its first command.
- UTF-8 encoding with decode_responses for the JSON cache payloads.
"""

import redis.asyncio as redis

__all__ = ["create_redis", "close_redis"]


def create_redis(url: str) -> redis.Redis:
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
    )


async def close_redis(client: redis.Redis | None) -> None:
    if client is not None:
        await client.aclose()
