"""
Database Initialization

Async SQLAlchemy engine and session factory for the shared idempotency store.
SQLite (aiosqlite) by default; any async SQLAlchemy URL works.
"""
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str) -> AsyncEngine:
    """Create async engine with settings suited to concurrent checkouts."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {
            "timeout": 30,  # 30 second timeout for lock acquisition
            "check_same_thread": False
        }
    engine = create_async_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
    )
    if database_url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_wal_mode)
    return engine


def _enable_wal_mode(dbapi_connection, connection_record) -> None:
    """WAL lets concurrent checkouts read while one reservation commits."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second timeout
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def initialize_database(engine: AsyncEngine) -> None:
    """Create all tables if they do not exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database initialized at {engine.url.render_as_string(hide_password=True)}")
