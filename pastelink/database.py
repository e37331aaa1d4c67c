"""Engine, session factory and schema bootstrap for the texts table.

One async engine is built per process from ``DATABASE_URL``. Which pool it
gets depends on the backend:

Backend Split
=============
::
    DATABASE_URL
        │
        ├─ postgresql+asyncpg://...   production
        │     QueuePool (20 + 10 overflow), pre-ping on checkout
        │     DELETE ... RETURNING available to the sweep
        │
        └─ sqlite+aiosqlite://...     tests, single-node setups
              SQLAlchemy's default pool; naive datetimes come back
              from the driver (TextRecord re-attaches UTC)

Sessions never expire their objects on commit: the store turns rows into
frozen TextRecord snapshots right after each statement, and a snapshot must
stay readable once the transaction is gone.

How to Use
===========
**Step 1 — Create the table on startup**::
    await init_db()

**Step 2 — One session per request**::
    @router.get("/api/texts/{code}")
    async def view_text(code: str, db: AsyncSession = Depends(get_db)): ...

**Step 3 — One session per maintenance run**::
    async with async_session() as session:
        store = RecordStore(session, generator, settings)

**Step 4 — Release pooled connections on shutdown**::
    await close_db()
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from pastelink.config import get_settings

__all__ = ["Base", "engine", "async_session", "get_db", "init_db", "close_db"]

settings = get_settings()

POSTGRES_POOL_OPTIONS = {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}


def _build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    options = POSTGRES_POOL_OPTIONS if database_url.startswith("postgresql") else {}
    return create_async_engine(database_url, echo=echo, **options)


engine = _build_engine(settings.DATABASE_URL, settings.DATABASE_ECHO)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; closing it returns the connection to the pool."""
    async with async_session() as session:
        yield session


async def init_db() -> None:
    # Registers the texts table on Base.metadata.
    import pastelink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
