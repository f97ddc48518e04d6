"""
Database engine setup

Async SQLAlchemy 2.0 engine and session factory built from DatabaseConfig.
"""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ..config import DatabaseConfig
from .tables import Base

logger = logging.getLogger(__name__)


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create the async engine for the configured database URL."""
    kwargs: dict = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        # Writers wait for each other instead of failing with "database is locked"
        kwargs["connect_args"] = {"timeout": 30}
    else:
        kwargs.update(pool_pre_ping=True, pool_recycle=3600)

    engine = create_async_engine(config.url, **kwargs)
    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    logger.info("Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")
