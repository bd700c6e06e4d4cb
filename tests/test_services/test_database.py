"""Tests for database engine and schema bootstrap."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect, text

from assetsync.config import Settings
from assetsync.database import create_engine, create_schema
from assetsync.exceptions import DatabaseConfigurationError

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


class TestDatabase:
    async def test_engine_connects(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1

    async def test_session_works(self, db_session: AsyncSession) -> None:
        result = await db_session.execute(text("SELECT 42"))
        assert result.scalar() == 42

    async def test_schema_has_photo_assets(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
            columns = await conn.run_sync(
                lambda sync_conn: {c["name"] for c in inspect(sync_conn).get_columns("photo_assets")}
            )
        assert "photo_assets" in tables
        assert {"tenant_id", "storage_key", "metadata_hash", "conflict_payload"} <= columns

    async def test_create_schema_is_idempotent(self, db_engine: AsyncEngine) -> None:
        await create_schema(db_engine)

    async def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "assets.db"
        settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{db_path}")

        engine, _ = create_engine(settings)
        try:
            await create_schema(engine)
        finally:
            await engine.dispose()

        assert db_path.exists()

    def test_unsupported_dialect_is_rejected(self) -> None:
        settings = Settings(_env_file=None, database_url="mysql+aiomysql://user:pw@db/assets")

        with pytest.raises(DatabaseConfigurationError, match="mysql"):
            create_engine(settings)
