"""Database engine, session factory and schema bootstrap."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from assetsync.exceptions import DatabaseConfigurationError
from assetsync.models.base import Base

if TYPE_CHECKING:
    from assetsync.config import Settings

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE ... RETURNING support
SUPPORTED_DIALECTS = frozenset({"sqlite", "postgresql"})


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory.

    Returns (engine, session_factory) tuple. For file-backed SQLite URLs the
    parent directory is created first. Raises DatabaseConfigurationError for
    dialects other than SQLite and PostgreSQL.
    """
    db_url = settings.database_url
    backend = make_url(db_url).get_backend_name()
    if backend not in SUPPORTED_DIALECTS:
        msg = f"Unsupported database dialect {backend!r}; use SQLite or PostgreSQL"
        raise DatabaseConfigurationError(msg)
    if db_url.startswith("sqlite") and "///" in db_url:
        db_path = db_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(db_url, echo=settings.debug)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet. Existing rows are kept."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database schema ensured (%d tables)", len(Base.metadata.tables))
