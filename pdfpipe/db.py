# pdfpipe/db.py
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from pdfpipe.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str, **kwargs) -> AsyncEngine:
    """
    Engine: tune pool size via kwargs (SQLAlchemy passes them through to asyncpg).
    """
    engine = create_async_engine(database_url, echo=False, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        # chunk rows rely on ON DELETE CASCADE, which sqlite only honours when asked
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    # Use async_sessionmaker (SQLAlchemy 2.0 style for async)
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_models(engine: AsyncEngine) -> None:
    """
    Development helper that creates tables from ORM metadata.
    In production, prefer Alembic migrations instead of create_all().
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created/checked")


async def close_engine(engine: AsyncEngine) -> None:
    """Call this on shutdown to cleanly dispose connection pool."""
    await engine.dispose()
    logger.info("Database engine disposed")
