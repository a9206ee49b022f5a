"""
Database connection management for the ODS quota core

Async SQLAlchemy engine and session factory built from ``QuotaConfig``,
plus schema creation helpers.
"""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from odsquota.config import QuotaConfig, get_config
from odsquota.database.tables import Base

logger = logging.getLogger(__name__)


def create_engine(config: Optional[QuotaConfig] = None) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine

    Args:
        config: Quota configuration (process configuration if omitted)

    Returns:
        AsyncEngine bound to ``config.database_url``
    """
    cfg = config or get_config()
    url = cfg.database_url
    engine_config = {"echo": cfg.echo_sql}

    if url.startswith("sqlite"):
        engine_config["connect_args"] = {"timeout": cfg.store_timeout_seconds}
    else:
        engine_config.update({
            "pool_pre_ping": True,
            "pool_timeout": cfg.store_timeout_seconds,
        })

    engine = create_async_engine(url, **engine_config)

    # Enable foreign keys for SQLite
    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.debug("Created async engine for %s", engine.url.render_as_string(hide_password=True))
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory; objects stay usable after commit"""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")


async def drop_db(engine: AsyncEngine) -> None:
    """Drop all tables (for testing)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("Database schema dropped")
