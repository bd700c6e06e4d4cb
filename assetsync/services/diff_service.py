"""Diff engine: classify a storage listing against the tenant's records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from assetsync.models.photo_asset import DATABASE_ONLY_PROVIDER, SYNC_STATUS_SYNCED
from assetsync.services.snapshot_service import record_snapshot, storage_snapshot

if TYPE_CHECKING:
    from collections.abc import Iterable

    from assetsync.models.photo_asset import PhotoAsset
    from assetsync.services.data_sync_types import SyncObjectSnapshot
    from assetsync.storage.base import StorageObject


@dataclass
class ConflictCandidate:
    """A key present on both sides whose metadata hashes differ."""

    record: PhotoAsset
    storage_object: StorageObject
    storage_snapshot: SyncObjectSnapshot
    record_snapshot: SyncObjectSnapshot


@dataclass
class StatusReconciliationEntry:
    """A key whose hashes match but whose record is not yet ``synced``."""

    record: PhotoAsset
    storage_object: StorageObject
    storage_snapshot: SyncObjectSnapshot
    record_snapshot: SyncObjectSnapshot


@dataclass
class SyncDiff:
    """Disjoint classification of one listing/record-set pair.

    ``missing_in_db`` follows storage listing order; all other lists follow
    record order. ``matched`` holds keys that need no action, and
    ``unverifiable`` keys where neither side has any metadata to compare.
    """

    missing_in_db: list[StorageObject] = field(default_factory=list)
    orphan_in_db: list[PhotoAsset] = field(default_factory=list)
    conflict_candidates: list[ConflictCandidate] = field(default_factory=list)
    status_reconciliation: list[StatusReconciliationEntry] = field(default_factory=list)
    matched: list[str] = field(default_factory=list)
    unverifiable: list[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(
            self.missing_in_db
            or self.orphan_in_db
            or self.conflict_candidates
            or self.status_reconciliation
        )


def classify(storage_objects: Iterable[StorageObject], records: Iterable[PhotoAsset]) -> SyncDiff:
    """Partition storage objects and records by storage key.

    Duplicate keys in the listing keep their first occurrence.
    """
    diff = SyncDiff()

    storage_by_key: dict[str, StorageObject] = {}
    for obj in storage_objects:
        storage_by_key.setdefault(obj.key, obj)

    record_list = list(records)
    record_keys = {record.storage_key for record in record_list}

    for key, obj in storage_by_key.items():
        if key not in record_keys:
            diff.missing_in_db.append(obj)

    for record in record_list:
        obj = storage_by_key.get(record.storage_key)
        if obj is None:
            if record.storage_provider != DATABASE_ONLY_PROVIDER:
                diff.orphan_in_db.append(record)
            continue

        live = storage_snapshot(obj)
        stored = record_snapshot(record)
        if live.metadata_hash is None and stored.metadata_hash is None:
            diff.unverifiable.append(record.storage_key)
        elif live.metadata_hash != stored.metadata_hash:
            diff.conflict_candidates.append(
                ConflictCandidate(
                    record=record,
                    storage_object=obj,
                    storage_snapshot=live,
                    record_snapshot=stored,
                )
            )
        elif record.sync_status != SYNC_STATUS_SYNCED:
            diff.status_reconciliation.append(
                StatusReconciliationEntry(
                    record=record,
                    storage_object=obj,
                    storage_snapshot=live,
                    record_snapshot=stored,
                )
            )
        else:
            diff.matched.append(record.storage_key)

    return diff
