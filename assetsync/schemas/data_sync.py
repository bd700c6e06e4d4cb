"""Data sync request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from assetsync.services.data_sync_types import (
    ConflictResolutionStrategy,
    ConflictType,
    DataSyncActionType,
)
from assetsync.storage.config import StorageConfig


class RunDataSyncRequest(BaseModel):
    """Request to run a data sync for the current tenant."""

    storage_config: StorageConfig | None = None
    dry_run: bool = False


class ResolveConflictRequest(BaseModel):
    """Request to resolve one flagged conflict."""

    strategy: ConflictResolutionStrategy
    storage_config: StorageConfig | None = None
    dry_run: bool = False


class SyncObjectSnapshotResponse(BaseModel):
    size: int | None = None
    etag: str | None = None
    last_modified: str | None = None
    metadata_hash: str | None = None


class ConflictPayloadResponse(BaseModel):
    type: ConflictType
    record_snapshot: SyncObjectSnapshotResponse | None = None
    storage_snapshot: SyncObjectSnapshotResponse | None = None


class ActionSnapshotsResponse(BaseModel):
    before: SyncObjectSnapshotResponse | None = None
    after: SyncObjectSnapshotResponse | None = None


class DataSyncActionResponse(BaseModel):
    """One per-item outcome of a run or a resolution."""

    type: DataSyncActionType
    storage_key: str
    photo_id: str | None = None
    applied: bool
    reason: str | None = None
    resolution: ConflictResolutionStrategy | None = None
    conflict_id: str | None = None
    conflict_payload: ConflictPayloadResponse | None = None
    snapshots: ActionSnapshotsResponse = Field(default_factory=ActionSnapshotsResponse)
    manifest_before: dict[str, Any] | None = None
    manifest_after: dict[str, Any] | None = None


class DataSyncSummaryResponse(BaseModel):
    storage_objects: int
    database_records: int
    inserted: int
    updated: int
    deleted: int
    conflicts: int
    skipped: int


class DataSyncResultResponse(BaseModel):
    """Summary and actions of a completed run."""

    summary: DataSyncSummaryResponse
    actions: list[DataSyncActionResponse]


class DataSyncConflictResponse(BaseModel):
    """A record currently flagged as conflict."""

    id: str
    storage_key: str
    photo_id: str | None = None
    reason: str | None = None
    payload: ConflictPayloadResponse | None = None
    manifest_version: str
    manifest: dict[str, Any]
    storage_provider: str
    synced_at: str
    updated_at: str
