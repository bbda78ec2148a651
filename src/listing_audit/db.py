"""SQLite database connection and schema management.

The result cache is stored in ~/.listing-audit/cache.db by default.
WAL mode is enabled so cache reads are not blocked by a concurrent write.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy import event, inspect
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = os.path.expanduser("~/.listing-audit")


def get_data_dir() -> Path:
    """Get the data directory, creating it if needed."""
    data_dir = Path(os.environ.get("DATA_DIR", DEFAULT_DATA_DIR))
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_db_url() -> str:
    """Get the SQLite database URL."""
    db_path = get_data_dir() / "cache.db"
    return f"sqlite+aiosqlite:///{db_path}"


def _set_wal_mode(dbapi_connection, connection_record):
    """Enable WAL mode for concurrent reads during writes."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


_engine = None
_session_factory = None


def create_engine_for(url: str) -> AsyncEngine:
    """Create an async engine with the SQLite pragmas applied on connect."""
    engine = create_async_engine(url, echo=False)
    event.listen(engine.sync_engine, "connect", _set_wal_mode)
    return engine


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine_for(get_db_url())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


def _drop_outdated_tables(sync_conn):
    """Cached rows are disposable, so a table missing columns is dropped and rebuilt."""
    from .sqlmodels import Base

    inspector = inspect(sync_conn)
    for table in Base.metadata.sorted_tables:
        if not inspector.has_table(table.name):
            continue
        existing = {column["name"] for column in inspector.get_columns(table.name)}
        if not set(table.columns.keys()) <= existing:
            logger.info("Rebuilding outdated cache table %s", table.name)
            table.drop(sync_conn)


async def init_db(engine: AsyncEngine | None = None):
    """Create all tables if they don't exist."""
    from .sqlmodels import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(_drop_outdated_tables)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Cache database initialized at %s", engine.url.database)


async def close_db():
    """Close the database engine."""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None
