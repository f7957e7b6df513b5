# src/clubrank/db/session.py

"""Database engine and session management."""

import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clubrank.config import Settings, get_settings

logger = logging.getLogger(__name__)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build the async engine for the configured database.

    SQLite gets no pool options. Row locks (``SELECT ... FOR UPDATE``) are
    only enforced on PostgreSQL; SQLite serializes writers on its own.
    """
    url = settings.database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.db_echo)

    return create_async_engine(
        url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
        echo=settings.db_echo,
    )


engine = create_engine_from_settings(get_settings())

# Services commit themselves and keep using their objects afterwards.
AsyncSessionLocal = async_sessionmaker(
    bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    Anything left uncommitted when the request fails is rolled back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error("Database session error, rolling back: %s", e)
            await session.rollback()
            raise
