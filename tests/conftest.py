"""Shared pytest fixtures for API, store, and cache tests."""

import datetime
import os
from typing import AsyncGenerator

# Must be set before pastelink.main builds its middleware from the settings.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SESSION_SECURE", "false")
os.environ.setdefault("CACHE_BACKEND", "memory")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pastelink.config import Settings
from pastelink.database import Base, get_db
from pastelink.dependencies import ServiceManager
from pastelink.main import app
from pastelink.security import hash_password
from pastelink.store import RecordStore
from pastelink.text_service import TextService

ADMIN_PASSWORD = "correct horse battery staple"
START = datetime.datetime(2026, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)


class MockClock:
    """Controllable clock; ``advance`` moves wall and monotonic time together."""

    def __init__(self, start: datetime.datetime = START) -> None:
        self._now = start
        self._monotonic = 0.0

    def now(self) -> datetime.datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"Cannot advance time by negative amount: {seconds}")
        self._now += datetime.timedelta(seconds=seconds)
        self._monotonic += seconds

    def advance_wall(self, seconds: float) -> None:
        self._now += datetime.timedelta(seconds=seconds)


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'pastelink.db'}",
        CACHE_BACKEND="memory",
        SESSION_SECURE=False,
        ADMIN_USER="admin",
        ADMIN_PASSWORD_HASH=hash_password(ADMIN_PASSWORD, iterations=1_000),
        RATE_LIMIT_REQUESTS=100,
        RATE_LIMIT_WINDOW_SECONDS=60,
    )


@pytest_asyncio.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_async_engine(settings.DATABASE_URL, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def services(settings: Settings, clock: MockClock) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager(settings, clock)
    await manager.startup()
    yield manager
    await manager.shutdown()


@pytest.fixture
def store(db_session: AsyncSession, services: ServiceManager, settings: Settings, clock: MockClock) -> RecordStore:
    return RecordStore(db_session, services.code_generator, settings, clock)


@pytest.fixture
def text_service(store: RecordStore, services: ServiceManager, settings: Settings, clock: MockClock) -> TextService:
    return TextService(store, services.cache, settings, clock=clock)


@pytest_asyncio.fixture
async def client(session_factory, services: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.services = services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def csrf_token(client: AsyncClient) -> str:
    response = await client.get("/api/csrf-token")
    assert response.status_code == 200
    return response.json()["csrf_token"]


@pytest_asyncio.fixture
async def admin_csrf(client: AsyncClient) -> str:
    """Log in and return the CSRF token of the fresh admin session."""
    response = await client.post("/api/login", json={"user": "admin", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return (await client.get("/api/csrf-token")).json()["csrf_token"]
