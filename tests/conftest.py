"""Shared test fixtures for AssetSync."""

from __future__ import annotations

import posixpath
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient

from assetsync.config import Settings
from assetsync.database import create_engine, create_schema
from assetsync.main import create_app
from assetsync.services.manifest_service import ManifestExtractionError
from assetsync.storage.base import StorageObject, StorageProvider

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from datetime import datetime
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

TENANT = "tenant-a"


class MemoryStorageProvider(StorageProvider):
    """Storage provider backed by a dict, preserving insertion order."""

    name = "memory"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.objects: dict[str, StorageObject] = {}
        self.blobs: dict[str, bytes] = {}
        self.list_all_calls = 0

    def put(
        self,
        key: str,
        data: bytes = b"",
        *,
        size: int | None = None,
        etag: str | None = None,
        last_modified: datetime | str | None = "2024-01-01T00:00:00Z",
    ) -> StorageObject:
        obj = StorageObject(
            key=key,
            size=len(data) if size is None else size,
            etag=etag if etag is not None else f"etag-{key}",
            last_modified=last_modified,
        )
        self.objects[key] = obj
        self.blobs[key] = data
        return obj

    def remove(self, key: str) -> None:
        self.objects.pop(key, None)
        self.blobs.pop(key, None)

    async def list_all_files(self) -> list[StorageObject]:
        self.list_all_calls += 1
        return list(self.objects.values())

    async def get_file(self, key: str) -> bytes | None:
        return self.blobs.get(key)

    async def upload_file(self, key: str, data: bytes) -> StorageObject:
        return self.put(key, data)

    async def delete_file(self, key: str) -> None:
        self.remove(key)

    def generate_public_url(self, key: str) -> str:
        return f"memory://{key}"


class ScriptedExtractor:
    """Manifest extractor returning a fixed item shape; fails for chosen keys."""

    def __init__(self, fail_keys: set[str] | None = None) -> None:
        self.fail_keys = set(fail_keys or ())
        self.calls: list[tuple[str, dict[str, StorageObject] | None]] = []

    async def extract(
        self,
        obj: StorageObject,
        provider: StorageProvider,
        *,
        live_photo_map: dict[str, StorageObject] | None = None,
        existing: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        self.calls.append((obj.key, live_photo_map))
        if obj.key in self.fail_keys:
            msg = f"cannot decode {obj.key}"
            raise ManifestExtractionError(msg)
        item: dict[str, Any] = {
            "id": posixpath.splitext(posixpath.basename(obj.key))[0],
            "key": obj.key,
            "size": obj.size,
            "url": provider.generate_public_url(obj.key),
        }
        video = (live_photo_map or {}).get(obj.key)
        if video is not None:
            item["live_photo_video_key"] = video.key
        return item


@asynccontextmanager
async def create_test_client(
    settings: Settings, extractor: Any = None
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan because
    ASGITransport does not trigger it.
    """
    app = create_app(settings)

    engine, session_factory = create_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.settings = settings
    app.state.manifest_extractor = extractor if extractor is not None else ScriptedExtractor()

    await create_schema(engine)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths and no default storage."""
    db_path = tmp_path / "test.db"
    return Settings(
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        default_tenant_id=TENANT,
        storage_config=None,
    )


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine, _ = create_engine(test_settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def provider() -> MemoryStorageProvider:
    return MemoryStorageProvider()


@pytest.fixture
def extractor() -> ScriptedExtractor:
    return ScriptedExtractor()
