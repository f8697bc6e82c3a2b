"""
Shared fixtures: a throwaway SQLite database per test, a fake upstream order
source and an HTTP client bound to the FastAPI app.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from atelier.models import Base
from atelier.services.holidays import HolidayCalendar
from atelier.services.sync_engine import SyncEngine

from fakes import FakeOrderSource


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'atelier.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def source():
    return FakeOrderSource()


@pytest.fixture
def sync_engine(session_factory, source):
    return SyncEngine(session_factory, lambda: source)


@pytest.fixture
def calendar():
    """Holiday calendar backed by an empty dataset."""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
    return HolidayCalendar("https://holidays.test/metropole.json", transport=transport)


@pytest.fixture
async def client(session_factory, sync_engine, calendar):
    """HTTP client against the app with database, engine and calendar swapped for test doubles."""
    from atelier.database import get_db
    from atelier.main import app
    from atelier.routers.dependencies import get_calendar, get_session_factory, get_sync_engine

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_sync_engine] = lambda: sync_engine
    app.dependency_overrides[get_calendar] = lambda: calendar

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
