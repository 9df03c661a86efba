"""
Shared fixtures: an on-disk SQLite database per test and an API client wired to it.

SQLite has no row locks, so every transaction is opened with BEGIN IMMEDIATE;
that takes the database write lock up front and serializes writers the way
the batch_code_locks row lock does on PostgreSQL.
"""
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from batch_code_core.db import get_session
from batch_code_core.models import Base
from batch_code_core.settings import Settings, get_settings


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'batch_codes.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL=None,
        BATCH_CODE_TIMEZONE="UTC",
        BATCH_CODE_MAX_ATTEMPTS=3,
        BATCH_CODE_DEADLINE_SECONDS=5.0,
    )


@pytest.fixture
async def client(sessionmaker, settings):
    from main import app

    async def _session_override():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
