"""Local filesystem storage provider."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

from assetsync.storage.base import StorageObject, StorageProvider, normalize_key


def _entry_for(path: Path, key: str) -> StorageObject:
    stat = path.stat()
    return StorageObject(
        key=key,
        size=stat.st_size,
        # Cheap change marker; content is never hashed during listing.
        etag=f"{stat.st_mtime_ns:x}-{stat.st_size:x}",
        last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
    )


class LocalStorageProvider(StorageProvider):
    """Directory tree on local disk. Keys are POSIX paths relative to base_path."""

    name = "local"

    def __init__(
        self,
        base_path: Path,
        *,
        base_url: str | None = None,
        prefix: str | None = None,
        exclude_regex: str | None = None,
        max_file_limit: int | None = None,
    ) -> None:
        super().__init__(prefix=prefix, exclude_regex=exclude_regex, max_file_limit=max_file_limit)
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/") if base_url else None

    def _resolve(self, key: str) -> Path:
        target = (self.base_path / self._full_key(key)).resolve()
        if not target.is_relative_to(self.base_path.resolve()):
            msg = f"Invalid storage key: {key}"
            raise ValueError(msg)
        return target

    def _scan(self) -> list[StorageObject]:
        root = self.base_path / self.prefix if self.prefix else self.base_path
        if not root.is_dir():
            msg = f"Storage directory does not exist: {root}"
            raise FileNotFoundError(msg)
        entries: list[StorageObject] = []
        for dirpath, dirs, files in os.walk(root):
            dirs[:] = sorted(d for d in dirs if not d.startswith("."))
            for filename in sorted(files):
                if filename.startswith("."):
                    continue
                full = Path(dirpath) / filename
                key = normalize_key(full.relative_to(self.base_path).as_posix())
                entries.append(_entry_for(full, key))
        return entries

    async def list_all_files(self) -> list[StorageObject]:
        return await asyncio.to_thread(self._scan)

    async def get_file(self, key: str) -> bytes | None:
        path = self._resolve(key)
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def upload_file(self, key: str, data: bytes) -> StorageObject:
        path = self._resolve(key)

        def _write() -> StorageObject:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            return _entry_for(path, self._full_key(key))

        return await asyncio.to_thread(_write)

    async def delete_file(self, key: str) -> None:
        path = self._resolve(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    def generate_public_url(self, key: str) -> str:
        full_key = self._full_key(key)
        if self.base_url:
            return f"{self.base_url}/{quote(full_key)}"
        return self._resolve(key).as_uri()
