import re
from functools import lru_cache

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine, AsyncSession

from batch_code_core.settings import get_settings


def normalize_database_url(url: str) -> str:
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    # asyncpg does not accept libpq's sslmode parameter
    url = re.sub(r'([?&])sslmode=[^&]*&?', r'\1', url)
    return url.rstrip('?&')


@lru_cache
def get_engine() -> AsyncEngine:
    database_url = get_settings().DATABASE_URL
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set")

    return create_async_engine(
        normalize_database_url(database_url),
        future=True,
        echo=False,
        pool_pre_ping=True,
    )


@lru_cache
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_session() -> AsyncSession:
    async with get_sessionmaker()() as session:
        yield session
