"""Database connection and session management."""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from smartamenyn.config import get_settings, require_database_url


class Base(DeclarativeBase):
    pass


@lru_cache
def get_engine() -> AsyncEngine:
    """Create the engine on first use so that importing models never needs a DB."""
    settings = get_settings()
    url = require_database_url(settings)

    # SQLite (tests, local runs) does not take queue-pool sizing arguments.
    pool_kwargs = {} if url.startswith("sqlite") else {"pool_size": 5, "max_overflow": 10}
    return create_async_engine(url, echo=settings.debug, **pool_kwargs)


@lru_cache
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


def async_session() -> AsyncSession:
    """Open a new session; use as ``async with async_session() as session``."""
    return get_sessionmaker()()
