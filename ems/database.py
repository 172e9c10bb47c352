"""Async SQLAlchemy engine, declarative base and the per-request unit of work.

Every HTTP request gets one ``AsyncSession`` through ``get_db``. Services only
``flush``; the session is committed once when the request finishes and rolled
back as a whole when anything raised, so a leave submission never lands
half-written.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from ems.config import Settings, settings

logger = logging.getLogger(__name__)


def engine_options(config: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``create_async_engine`` derived from settings.

    SQLite (used for local runs and tests) keeps SQLAlchemy's default pool,
    which does not accept queue sizing.
    """
    options: Dict[str, Any] = {
        "echo": config.DB_ECHO or config.ENVIRONMENT == "development",
        "pool_pre_ping": True,
    }
    if make_url(config.DATABASE_URL).get_backend_name() != "sqlite":
        options["pool_size"] = config.DB_POOL_SIZE
        options["max_overflow"] = config.DB_MAX_OVERFLOW
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings))

async_session_factory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by the Employee and leave models."""


@asynccontextmanager
async def unit_of_work(
    factory: Optional[async_sessionmaker] = None,
) -> AsyncIterator[AsyncSession]:
    """Open a session, commit it on success and roll it back on any error."""
    factory = factory or async_session_factory
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("Rolling back unit of work after an error")
            await session.rollback()
            raise


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one unit of work per request."""
    async with unit_of_work() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
    logger.info("Database engine disposed")
