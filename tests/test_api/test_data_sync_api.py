"""Integration tests for the data sync and health endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from assetsync import __version__
from assetsync.config import Settings
from assetsync.storage.config import LocalStorageConfig
from cli.data_sync_client import iter_sse_events
from tests.conftest import TENANT, ScriptedExtractor, create_test_client

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from httpx import AsyncClient


@pytest.fixture
def photo_dir(tmp_path: Path) -> Path:
    root = tmp_path / "photos"
    root.mkdir()
    (root / "a.jpg").write_bytes(b"aaa")
    (root / "b.png").write_bytes(b"bbbb")
    (root / "notes.txt").write_text("skip me")
    return root


@pytest.fixture
def app_settings(tmp_path: Path, photo_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'api.db'}",
        default_tenant_id=TENANT,
        storage_config=LocalStorageConfig(base_path=photo_dir),
        sse_heartbeat_seconds=5,
    )


@pytest.fixture
async def client(app_settings: Settings) -> AsyncGenerator[AsyncClient]:
    async with create_test_client(app_settings, ScriptedExtractor()) as ac:
        yield ac


def _events(body: str) -> list[dict[str, Any]]:
    return list(iter_sse_events(body.splitlines()))


async def _flag_missing(client: AsyncClient, photo_dir: Path) -> str:
    resp = await client.post("/api/data-sync/run/sync", json={})
    assert resp.status_code == 200
    (photo_dir / "a.jpg").unlink()
    resp = await client.post("/api/data-sync/run/sync", json={})
    assert resp.json()["summary"]["conflicts"] == 1
    conflicts = (await client.get("/api/data-sync/conflicts")).json()
    assert len(conflicts) == 1
    conflict_id: str = conflicts[0]["id"]
    return conflict_id


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "version": __version__,
            "database": "ok",
            "default_storage": "local",
        }


class TestRunSync:
    async def test_imports_images(self, client: AsyncClient) -> None:
        resp = await client.post("/api/data-sync/run/sync", json={})

        assert resp.status_code == 200
        data = resp.json()
        assert data["summary"]["storage_objects"] == 2
        assert data["summary"]["inserted"] == 2
        assert {a["storage_key"] for a in data["actions"]} == {"a.jpg", "b.png"}
        assert all(a["type"] == "insert" and a["applied"] for a in data["actions"])

        again = (await client.post("/api/data-sync/run/sync", json={})).json()
        assert again["actions"] == []
        assert again["summary"]["database_records"] == 2

    async def test_dry_run(self, client: AsyncClient) -> None:
        resp = await client.post("/api/data-sync/run/sync", json={"dry_run": True})

        assert resp.status_code == 200
        assert all(not a["applied"] for a in resp.json()["actions"])
        follow = (await client.post("/api/data-sync/run/sync", json={"dry_run": True})).json()
        assert follow["summary"]["database_records"] == 0

    async def test_request_storage_config_overrides_default(
        self, client: AsyncClient, tmp_path: Path
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        (other / "only.jpg").write_bytes(b"x")

        resp = await client.post(
            "/api/data-sync/run/sync",
            json={"storage_config": {"provider": "local", "base_path": str(other)}},
        )

        assert resp.status_code == 200
        assert [a["storage_key"] for a in resp.json()["actions"]] == ["only.jpg"]

    async def test_unknown_provider_is_rejected(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/data-sync/run/sync", json={"storage_config": {"provider": "eagle"}}
        )
        assert resp.status_code == 422
        assert isinstance(resp.json()["detail"], list)

    async def test_tenant_header_scopes_records(self, client: AsyncClient) -> None:
        await client.post("/api/data-sync/run/sync", json={})

        resp = await client.post(
            "/api/data-sync/run/sync", json={}, headers={"X-Tenant-Id": "tenant-b"}
        )

        assert resp.json()["summary"]["database_records"] == 0
        assert resp.json()["summary"]["inserted"] == 2

    async def test_blank_tenant_header(self, client: AsyncClient) -> None:
        resp = await client.post("/api/data-sync/run/sync", json={}, headers={"X-Tenant-Id": " "})
        assert resp.status_code == 400

    async def test_missing_storage_directory_is_server_error(
        self, client: AsyncClient, tmp_path: Path
    ) -> None:
        resp = await client.post(
            "/api/data-sync/run/sync",
            json={"storage_config": {"provider": "local", "base_path": str(tmp_path / "nope")}},
        )
        assert resp.status_code == 502


class TestNoStorageConfigured:
    @pytest.fixture
    async def bare_client(self, test_settings: Settings) -> AsyncGenerator[AsyncClient]:
        async with create_test_client(test_settings) as ac:
            yield ac

    async def test_health_reports_no_default_storage(self, bare_client: AsyncClient) -> None:
        resp = await bare_client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["default_storage"] is None

    async def test_run_sync_returns_400(self, bare_client: AsyncClient) -> None:
        resp = await bare_client.post("/api/data-sync/run/sync", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "No active storage provider is configured."

    async def test_stream_returns_400_before_streaming(self, bare_client: AsyncClient) -> None:
        resp = await bare_client.post("/api/data-sync/run", json={})
        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/json")


class TestRunStream:
    async def test_streams_progress(self, client: AsyncClient) -> None:
        resp = await client.post("/api/data-sync/run", json={})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/event-stream")
        assert resp.headers["cache-control"] == "no-cache"
        assert resp.text.startswith(": connected\n\n")

        events = _events(resp.text)
        types = [e["type"] for e in events]
        assert types[0] == "start"
        assert types[-1] == "complete"
        assert types.count("action") == 2
        assert events[-1]["payload"]["summary"]["inserted"] == 2

    async def test_stream_reports_errors_as_events(
        self, client: AsyncClient, tmp_path: Path
    ) -> None:
        resp = await client.post(
            "/api/data-sync/run",
            json={"storage_config": {"provider": "local", "base_path": str(tmp_path / "nope")}},
        )

        assert resp.status_code == 200
        events = _events(resp.text)
        assert events == [{"type": "error", "payload": {"message": "Data sync failed"}}]


class TestConflicts:
    async def test_lists_conflicts(self, client: AsyncClient, photo_dir: Path) -> None:
        conflict_id = await _flag_missing(client, photo_dir)

        conflicts = (await client.get("/api/data-sync/conflicts")).json()

        assert conflicts[0]["id"] == conflict_id
        assert conflicts[0]["storage_key"] == "a.jpg"
        assert conflicts[0]["payload"]["type"] == "missing-in-storage"
        assert conflicts[0]["manifest"]["data"]["key"] == "a.jpg"

    async def test_resolve_prefer_storage_deletes(
        self, client: AsyncClient, photo_dir: Path
    ) -> None:
        conflict_id = await _flag_missing(client, photo_dir)

        resp = await client.post(
            f"/api/data-sync/conflicts/{conflict_id}/resolve", json={"strategy": "prefer-storage"}
        )

        assert resp.status_code == 200
        assert resp.json()["type"] == "delete"
        assert resp.json()["applied"] is True
        assert (await client.get("/api/data-sync/conflicts")).json() == []

        again = await client.post(
            f"/api/data-sync/conflicts/{conflict_id}/resolve", json={"strategy": "prefer-storage"}
        )
        assert again.status_code == 404

    async def test_resolve_twice_conflicts(self, client: AsyncClient, photo_dir: Path) -> None:
        conflict_id = await _flag_missing(client, photo_dir)
        url = f"/api/data-sync/conflicts/{conflict_id}/resolve"

        first = await client.post(url, json={"strategy": "prefer-database"})
        second = await client.post(url, json={"strategy": "prefer-database"})

        assert first.status_code == 200
        assert first.json()["resolution"] == "prefer-database"
        assert second.status_code == 409

    async def test_resolve_dry_run(self, client: AsyncClient, photo_dir: Path) -> None:
        conflict_id = await _flag_missing(client, photo_dir)

        resp = await client.post(
            f"/api/data-sync/conflicts/{conflict_id}/resolve",
            json={"strategy": "prefer-storage", "dry_run": True},
        )

        assert resp.json()["applied"] is False
        assert len((await client.get("/api/data-sync/conflicts")).json()) == 1

    async def test_resolve_unknown_conflict(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/data-sync/conflicts/missing/resolve", json={"strategy": "prefer-storage"}
        )
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Conflict record not found."

    async def test_resolve_invalid_strategy(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/data-sync/conflicts/x/resolve", json={"strategy": "prefer-nobody"}
        )
        assert resp.status_code == 422
