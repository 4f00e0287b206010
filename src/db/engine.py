"""Database wiring for the pipeline: one async engine, one session factory.

The API, the scheduler jobs and the CLI all open sessions from ``async_session``.
"""
from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config.settings import settings

_SYNC_PREFIXES = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
}


def async_database_url(url: str) -> str:
    """Point a plain Postgres URL at the asyncpg driver; other URLs pass through."""
    for prefix, replacement in _SYNC_PREFIXES.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def engine_options(url: str) -> dict:
    # SQLite keeps SQLAlchemy's default pool
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 10, "max_overflow": 20, "pool_recycle": 1800, "pool_pre_ping": True}


DATABASE_URL = async_database_url(settings.DATABASE_URL)

engine = create_async_engine(DATABASE_URL, **engine_options(DATABASE_URL))
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session
