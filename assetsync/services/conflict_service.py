"""Conflict listing and operator-driven conflict resolution."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from assetsync.exceptions import (
    ConflictNotFoundError,
    ImageProcessingFailedError,
    InvalidConflictStateError,
)
from assetsync.models.photo_asset import (
    CURRENT_MANIFEST_VERSION,
    DATABASE_ONLY_PROVIDER,
    SYNC_STATUS_CONFLICT,
)
from assetsync.services import asset_store
from assetsync.services.data_sync_service import extract_manifest
from assetsync.services.data_sync_types import (
    ActionSnapshots,
    ConflictPayload,
    ConflictResolutionStrategy,
    ConflictType,
    DataSyncAction,
    DataSyncActionType,
    DataSyncConflict,
)
from assetsync.services.datetime_service import now_iso
from assetsync.services.manifest_service import create_manifest_payload, manifest_data
from assetsync.services.snapshot_service import record_snapshot, storage_snapshot

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from assetsync.models.photo_asset import PhotoAsset
    from assetsync.services.manifest_service import ManifestExtractor
    from assetsync.storage.base import StorageProvider

logger = logging.getLogger(__name__)

REASON_PREVIEW_DELETE = "Preview - would remove database record to match storage."
REASON_DELETED = "Removed database record to align with storage."
REASON_REPROCESSED = "Updated record using latest storage metadata."
REASON_PREVIEW_RETAIN = "Preview - would retain database record despite missing storage."
REASON_RETAINED = "Marked record as database-only after missing storage reconciliation."
REASON_DATABASE_WINS = "Marked conflict as resolved in favor of database manifest."


def _to_conflict(record: PhotoAsset) -> DataSyncConflict:
    return DataSyncConflict(
        id=record.id,
        storage_key=record.storage_key,
        photo_id=record.photo_id,
        reason=record.conflict_reason,
        payload=ConflictPayload.from_dict(record.conflict_payload),
        manifest_version=record.manifest_version,
        manifest=record.manifest,
        storage_provider=record.storage_provider,
        synced_at=record.synced_at,
        updated_at=record.updated_at,
    )


async def list_conflicts(session: AsyncSession, tenant_id: str) -> list[DataSyncConflict]:
    """All records of the tenant currently flagged as conflict."""
    records = await asset_store.select_conflicts(session, tenant_id)
    return [_to_conflict(record) for record in records]


def _require_applied(rowcount: int, conflict_id: str) -> None:
    """Raise when a guarded write found the record no longer in conflict."""
    if rowcount == 0:
        logger.warning("Conflict %s was resolved concurrently", conflict_id)
        raise InvalidConflictStateError("Target record is not in conflict state.")


async def resolve_conflict(
    session: AsyncSession,
    tenant_id: str,
    conflict_id: str,
    strategy: ConflictResolutionStrategy,
    provider: StorageProvider,
    extractor: ManifestExtractor,
    *,
    dry_run: bool = False,
) -> DataSyncAction:
    """Clear one conflict according to ``strategy``.

    Raises ConflictNotFoundError, InvalidConflictStateError (not flagged, or
    payload unusable) or ImageProcessingFailedError (prefer-storage cannot be
    satisfied against current storage). Failed calls mutate nothing.
    """
    record = await asset_store.select_by_id(session, tenant_id, conflict_id)
    if record is None:
        raise ConflictNotFoundError("Conflict record not found.")
    if record.sync_status != SYNC_STATUS_CONFLICT:
        raise InvalidConflictStateError("Target record is not in conflict state.")
    payload = ConflictPayload.from_dict(record.conflict_payload)
    if payload is None:
        raise InvalidConflictStateError("Missing conflict payload on record.")

    if strategy == ConflictResolutionStrategy.PREFER_STORAGE:
        action = await _resolve_by_storage(
            session, tenant_id, record, payload, provider, extractor, dry_run=dry_run
        )
    else:
        action = await _resolve_by_database(session, tenant_id, record, payload, dry_run=dry_run)

    logger.info(
        "Resolved conflict %s (%s) with %s: %s applied=%s",
        conflict_id,
        payload.type,
        strategy,
        action.type,
        action.applied,
    )
    return action


async def _resolve_by_storage(
    session: AsyncSession,
    tenant_id: str,
    record: PhotoAsset,
    payload: ConflictPayload,
    provider: StorageProvider,
    extractor: ManifestExtractor,
    *,
    dry_run: bool,
) -> DataSyncAction:
    before = record_snapshot(record)
    manifest_before = manifest_data(record.manifest)

    if payload.type == ConflictType.MISSING_IN_STORAGE:
        if not dry_run:
            rowcount = await asset_store.delete_by_id(
                session, tenant_id, record.id, require_conflict=True
            )
            _require_applied(rowcount, record.id)
        return DataSyncAction(
            type=DataSyncActionType.DELETE,
            storage_key=record.storage_key,
            photo_id=record.photo_id,
            applied=not dry_run,
            resolution=ConflictResolutionStrategy.PREFER_STORAGE,
            reason=REASON_PREVIEW_DELETE if dry_run else REASON_DELETED,
            conflict_id=record.id,
            snapshots=ActionSnapshots(before=before),
            manifest_before=manifest_before,
        )

    storage_object = next(
        (obj for obj in await provider.list_images() if obj.key == record.storage_key), None
    )
    if storage_object is None:
        raise ImageProcessingFailedError(
            "Storage object no longer exists; rerun data sync before resolving."
        )

    item = await extract_manifest(extractor, storage_object, provider, existing=manifest_before)
    if item is None:
        raise ImageProcessingFailedError("Failed to reprocess storage object.")

    after = storage_snapshot(storage_object)
    if not dry_run:
        rowcount = await asset_store.update_by_id(
            session,
            tenant_id,
            record.id,
            {
                "photo_id": item.get("id"),
                "storage_provider": provider.name,
                **asset_store.snapshot_columns(after),
                "manifest_version": CURRENT_MANIFEST_VERSION,
                "manifest": create_manifest_payload(item),
                **asset_store.synced_columns(now_iso()),
            },
            require_conflict=True,
        )
        _require_applied(rowcount, record.id)

    return DataSyncAction(
        type=DataSyncActionType.UPDATE,
        storage_key=record.storage_key,
        photo_id=item.get("id"),
        applied=not dry_run,
        resolution=ConflictResolutionStrategy.PREFER_STORAGE,
        reason=REASON_REPROCESSED,
        conflict_id=record.id,
        snapshots=ActionSnapshots(before=before, after=after),
        manifest_before=manifest_before,
        manifest_after=item,
    )


async def _resolve_by_database(
    session: AsyncSession,
    tenant_id: str,
    record: PhotoAsset,
    payload: ConflictPayload,
    *,
    dry_run: bool,
) -> DataSyncAction:
    before = record_snapshot(record)
    manifest = manifest_data(record.manifest)

    if payload.type == ConflictType.MISSING_IN_STORAGE:
        if not dry_run:
            rowcount = await asset_store.update_by_id(
                session,
                tenant_id,
                record.id,
                {
                    "storage_provider": DATABASE_ONLY_PROVIDER,
                    **asset_store.synced_columns(now_iso()),
                },
                require_conflict=True,
            )
            _require_applied(rowcount, record.id)
        return DataSyncAction(
            type=DataSyncActionType.UPDATE,
            storage_key=record.storage_key,
            photo_id=record.photo_id,
            applied=not dry_run,
            resolution=ConflictResolutionStrategy.PREFER_DATABASE,
            reason=REASON_PREVIEW_RETAIN if dry_run else REASON_RETAINED,
            conflict_id=record.id,
            snapshots=ActionSnapshots(before=before),
            manifest_before=manifest,
            manifest_after=manifest,
        )

    # The manifest stays; only the classification is overridden, so the
    # record adopts the storage numbers captured when the conflict was raised.
    after = payload.storage_snapshot
    if after is None:
        raise InvalidConflictStateError("Missing storage snapshot to resolve metadata mismatch.")

    if not dry_run:
        rowcount = await asset_store.update_by_id(
            session,
            tenant_id,
            record.id,
            {
                **asset_store.snapshot_columns(after),
                **asset_store.synced_columns(now_iso()),
            },
            require_conflict=True,
        )
        _require_applied(rowcount, record.id)

    return DataSyncAction(
        type=DataSyncActionType.UPDATE,
        storage_key=record.storage_key,
        photo_id=record.photo_id,
        applied=not dry_run,
        resolution=ConflictResolutionStrategy.PREFER_DATABASE,
        reason=REASON_DATABASE_WINS,
        conflict_id=record.id,
        snapshots=ActionSnapshots(before=before, after=after),
        manifest_before=manifest,
        manifest_after=manifest,
    )
