"""Async engine and session factory for the snapshot and alert-rule tables.

One engine per process, created lazily from ``PanelwatchConfig``. SQLite
connections get their PRAGMAs as they are opened, so every pooled
connection behaves the same.
"""

from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import PanelwatchConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("database")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _install_sqlite_pragmas(engine: AsyncEngine, config: PanelwatchConfig) -> None:
    busy_timeout = int(config.db_busy_timeout)
    synchronous = config.db_synchronous

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(f"PRAGMA busy_timeout={busy_timeout}")
            cursor.execute(f"PRAGMA synchronous={synchronous}")
        finally:
            cursor.close()


def get_engine(config: PanelwatchConfig) -> AsyncEngine:
    """Return the process engine, creating it on first use."""
    global _engine
    if _engine is not None:
        return _engine

    sqlite = config.database_url.startswith("sqlite")
    _engine = create_async_engine(
        config.database_url,
        echo=config.debug,
        pool_pre_ping=True,
    )
    if sqlite:
        _install_sqlite_pragmas(_engine, config)
    logger.info("database_engine_created", backend=_engine.dialect.name)
    return _engine


def get_session_factory(config: PanelwatchConfig) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(config), expire_on_commit=False)
    return _session_factory


async def create_tables(config: PanelwatchConfig) -> None:
    """Create missing tables; switch SQLite databases to WAL when enabled.

    ``journal_mode`` persists in the database file.
    """
    engine = get_engine(config)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if config.db_wal_mode and engine.dialect.name == "sqlite":
        async with engine.connect() as conn:
            mode = (await conn.execute(text("PRAGMA journal_mode=WAL"))).scalar()
        logger.info("sqlite_journal_mode", mode=mode)


async def init_database(config: PanelwatchConfig) -> async_sessionmaker[AsyncSession]:
    """Create tables and hand back the session factory the stores share."""
    await create_tables(config)
    return get_session_factory(config)


async def close_engine() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("database_engine_closed")
