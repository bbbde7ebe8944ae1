"""Shared pytest fixtures for API, mapping store, and admission control tests."""

import logging
import time
from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401
from app.config import Settings
from app.database import Base, get_db
from app.dependencies import ServiceManager, get_service_manager
from app.main import app
from app.store import MappingStore
from app.url_service import URLShorteningService


@pytest.fixture
def settings() -> Settings:
    return Settings(RATE_LIMIT_BACKEND="memory", BASE_URL="http://short.test")


class FakeClock:
    """Stand-in for ``time.time`` that only moves when told to."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch) -> FakeClock:
    """Freeze wall-clock time for the throttle counters."""
    fake = FakeClock()
    monkeypatch.setattr(time, "time", fake)
    return fake


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("urlshortener.test")


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shortener.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_service(settings, logger) -> Callable[..., URLShorteningService]:
    """Build a service over a given session, optionally with a fixed code generator."""

    def _make(session: AsyncSession, **kwargs) -> URLShorteningService:
        store = MappingStore(session, timeout=settings.STORE_TIMEOUT_SECONDS)
        return URLShorteningService(store, settings, logger, **kwargs)

    return _make


@pytest_asyncio.fixture
async def service_manager(settings) -> AsyncGenerator[ServiceManager, None]:
    manager = ServiceManager()
    await manager.initialize(settings)
    yield manager
    await manager.cleanup()


@pytest_asyncio.fixture
async def client(session_factory, service_manager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_service_manager() -> ServiceManager:
        return service_manager

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
