"""Value types shared by the data-sync services."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class ConflictResolutionStrategy(StrEnum):
    """Operator choice when resolving a flagged conflict."""

    PREFER_STORAGE = "prefer-storage"
    PREFER_DATABASE = "prefer-database"


class ConflictType(StrEnum):
    MISSING_IN_STORAGE = "missing-in-storage"
    METADATA_MISMATCH = "metadata-mismatch"


class DataSyncActionType(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    CONFLICT = "conflict"


class SyncStage(StrEnum):
    """Executor stages, in run order."""

    MISSING_IN_DB = "missing-in-db"
    ORPHAN_IN_DB = "orphan-in-db"
    METADATA_CONFLICTS = "metadata-conflicts"
    STATUS_RECONCILIATION = "status-reconciliation"


@dataclass(frozen=True)
class SyncObjectSnapshot:
    """Comparable view of storage metadata for one key."""

    size: int | None
    etag: str | None
    last_modified: str | None
    metadata_hash: str | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SyncObjectSnapshot | None:
        if not data:
            return None
        return cls(
            size=data.get("size"),
            etag=data.get("etag"),
            last_modified=data.get("last_modified"),
            metadata_hash=data.get("metadata_hash"),
        )


@dataclass(frozen=True)
class ConflictPayload:
    """Stored verbatim on a conflict record until it is resolved."""

    type: ConflictType
    record_snapshot: SyncObjectSnapshot | None = None
    storage_snapshot: SyncObjectSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": str(self.type),
            "storage_snapshot": self.storage_snapshot.to_dict() if self.storage_snapshot else None,
            "record_snapshot": self.record_snapshot.to_dict() if self.record_snapshot else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ConflictPayload | None:
        """Parse a stored payload. Returns None for missing or unknown types."""
        if not data:
            return None
        try:
            conflict_type = ConflictType(data.get("type"))
        except ValueError:
            return None
        return cls(
            type=conflict_type,
            record_snapshot=SyncObjectSnapshot.from_dict(data.get("record_snapshot")),
            storage_snapshot=SyncObjectSnapshot.from_dict(data.get("storage_snapshot")),
        )


@dataclass(frozen=True)
class ActionSnapshots:
    before: SyncObjectSnapshot | None = None
    after: SyncObjectSnapshot | None = None


@dataclass(frozen=True)
class DataSyncAction:
    """Outcome of one item in a run or of one conflict resolution."""

    type: DataSyncActionType
    storage_key: str
    photo_id: str | None
    applied: bool
    reason: str | None = None
    resolution: ConflictResolutionStrategy | None = None
    conflict_id: str | None = None
    conflict_payload: ConflictPayload | None = None
    snapshots: ActionSnapshots = field(default_factory=ActionSnapshots)
    manifest_before: dict[str, Any] | None = None
    manifest_after: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["conflict_payload"] = (
            self.conflict_payload.to_dict() if self.conflict_payload else None
        )
        return data


@dataclass
class DataSyncResultSummary:
    storage_objects: int = 0
    database_records: int = 0
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    conflicts: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class DataSyncResult:
    summary: DataSyncResultSummary
    actions: list[DataSyncAction] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "actions": [action.to_dict() for action in self.actions],
        }


@dataclass(frozen=True)
class DataSyncConflict:
    """Listing view of a record currently flagged as conflict."""

    id: str
    storage_key: str
    photo_id: str | None
    reason: str | None
    payload: ConflictPayload | None
    manifest_version: str
    manifest: dict[str, Any]
    storage_provider: str
    synced_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["payload"] = self.payload.to_dict() if self.payload else None
        return data
