"""Database engine, session factory and request transaction scope.

One request is one transaction: services only flush, and the session is
committed or rolled back by ``transaction_scope``. Per-product write locks
taken during the request are released by that commit or rollback.
"""

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from storefront.infrastructure.config import settings

logger = structlog.get_logger()


def build_engine(database_url: str, **options: Any) -> AsyncEngine:
    """Create an async engine.

    Pool sizing from settings applies to server databases; SQLite keeps
    the dialect's default pool. ``options`` override the defaults.
    """
    engine_options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() != "sqlite":
        engine_options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    engine_options.update(options)
    return create_async_engine(database_url, **engine_options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url)
async_session_factory = build_session_factory(engine)

# Base class for models
Base = declarative_base()


@asynccontextmanager
async def transaction_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session, commit it when the block succeeds, roll back otherwise."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            logger.debug("Transaction rolled back")
            raise


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get the request's database session.

    Yields:
        AsyncSession for database operations.
    """
    async with transaction_scope(async_session_factory) as session:
        yield session
