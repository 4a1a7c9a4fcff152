"""
Database Connection Module
Builds the SQLAlchemy async engine and session factory for the stock table.
"""

import logging
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)


# Base class for all our models
class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine.

    PostgreSQL (psycopg) gets a bounded connection pool. SQLite, used by the
    test-suite, opens a fresh connection per session so no connection
    outlives the event loop that created it.
    """
    kwargs = {"echo": echo}
    if database_url.startswith("sqlite"):
        kwargs["poolclass"] = NullPool
    else:
        kwargs.update(
            pool_size=5,  # Connection pool size
            max_overflow=10,  # Extra connections when pool is full
            pool_pre_ping=True,
        )
    return create_async_engine(database_url, **kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory - objects stay readable after commit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Import models so they register on Base.metadata
    from barqueue import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✅ Database tables created")


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Dependency injection for FastAPI routes.
    Yields a database session from the application's session factory.
    """
    session_maker = request.app.state.services.session_maker
    async with session_maker() as session:
        yield session
