"""Engine and session lifecycle for the import and repair commands.

One engine per process, created on first use from ``DATABASE_URL`` and
disposed by ``close_db`` when a command finishes.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from cinecrm.config import DBConfig, get_config
from cinecrm.db.models import Base

_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def is_sqlite(url: str) -> bool:
    return url.lower().startswith("sqlite")


def engine_options(db_config: DBConfig) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``.

    SQLite gets no pool tuning; server databases get a pre-pinged,
    recycled pool sized from the config.
    """
    options: dict[str, Any] = {"echo": db_config.echo}
    if is_sqlite(db_config.url):
        return options

    options.update(
        pool_size=db_config.pool_size,
        max_overflow=db_config.pool_max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
    return options


def _enforce_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    # Repair passes must delete in reference order, as they would on PostgreSQL
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first call.

    Raises:
        KeyError: If DATABASE_URL is not configured
    """
    global _engine

    if _engine is None:
        db_config = get_config().db
        _engine = create_async_engine(db_config.url, **engine_options(db_config))
        if is_sqlite(db_config.url):
            _enforce_sqlite_foreign_keys(_engine)

    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory

    if _session_factory is None:
        # Rows stay readable between per-row commits
        _session_factory = sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Session for one command; commits on exit, rolls back on error."""
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(drop: bool = False) -> None:
    """Create the CRM tables, optionally dropping them first.

    For local databases and tests; the production schema is owned by the CRM.
    """
    async with get_engine().begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
