"""Data sync service: reconcile a storage listing with the tenant's asset records.

A run lists storage, loads records, classifies them and then walks four
stages in order: missing-in-db, orphan-in-db, metadata-conflicts and
status-reconciliation. The run is not transactional; each applied item is
committed on its own and a later run re-derives whatever is left.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from assetsync.exceptions import DataSyncCancelledError
from assetsync.models.photo_asset import SYNC_STATUS_CONFLICT
from assetsync.services import asset_store
from assetsync.services.data_sync_types import (
    ActionSnapshots,
    ConflictPayload,
    ConflictType,
    DataSyncAction,
    DataSyncActionType,
    DataSyncResult,
    DataSyncResultSummary,
    SyncStage,
)
from assetsync.services.datetime_service import now_iso
from assetsync.services.diff_service import classify
from assetsync.services.manifest_service import create_manifest_payload, manifest_data
from assetsync.services.progress_service import ProgressReporter, StageStatus
from assetsync.services.snapshot_service import record_snapshot, storage_snapshot
from assetsync.storage.base import detect_live_photos

if TYPE_CHECKING:
    import asyncio

    from sqlalchemy.ext.asyncio import AsyncSession

    from assetsync.services.diff_service import SyncDiff
    from assetsync.services.manifest_service import ManifestExtractor
    from assetsync.services.progress_service import ProgressEmitter
    from assetsync.storage.base import StorageObject, StorageProvider

logger = logging.getLogger(__name__)

REASON_PREVIEW_INSERT = "Preview - new storage object would be imported."
REASON_EXTRACT_FAILED = "Failed to generate manifest for new storage object."
REASON_MISSING_IN_STORAGE = "Storage object missing in provider."
REASON_METADATA_MISMATCH = "Storage metadata differs from database manifest."
REASON_STATUS_RECONCILED = "Marked as synced to reflect matching metadata."


@dataclass
class _RunContext:
    session: AsyncSession
    tenant_id: str
    provider: StorageProvider
    extractor: ManifestExtractor
    dry_run: bool
    reporter: ProgressReporter
    diff: SyncDiff
    result: DataSyncResult
    cancel_event: asyncio.Event | None = None
    live_photo_map: dict[str, StorageObject] | None = None

    @property
    def summary(self) -> DataSyncResultSummary:
        return self.result.summary

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(
                "Data sync for tenant %s cancelled after %d actions",
                self.tenant_id,
                len(self.result.actions),
            )
            raise DataSyncCancelledError("Data sync cancelled.", self.result)

    async def record(self, stage: SyncStage, index: int, total: int, action: DataSyncAction) -> None:
        self.result.actions.append(action)
        await self.reporter.action(
            stage, index=index, total=total, action=action, summary=self.summary
        )


def _stage_totals(diff: SyncDiff) -> dict[str, int]:
    return {
        str(SyncStage.MISSING_IN_DB): len(diff.missing_in_db),
        str(SyncStage.ORPHAN_IN_DB): len(diff.orphan_in_db),
        str(SyncStage.METADATA_CONFLICTS): len(diff.conflict_candidates),
        str(SyncStage.STATUS_RECONCILIATION): len(diff.status_reconciliation),
    }


async def _ensure_live_photo_map(ctx: _RunContext) -> dict[str, StorageObject] | None:
    """Build the image -> motion sidecar map once, only for real runs with work."""
    if ctx.dry_run or not ctx.diff.missing_in_db:
        return None
    if ctx.live_photo_map is None:
        ctx.live_photo_map = detect_live_photos(await ctx.provider.list_all_files())
        logger.debug("Detected %d live photo pairs", len(ctx.live_photo_map))
    return ctx.live_photo_map


async def extract_manifest(
    extractor: ManifestExtractor,
    obj: StorageObject,
    provider: StorageProvider,
    *,
    live_photo_map: dict[str, StorageObject] | None = None,
    existing: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """Run the extractor, returning None instead of raising on failure."""
    try:
        return await extractor.extract(
            obj, provider, live_photo_map=live_photo_map, existing=existing
        )
    except Exception:
        logger.exception("Failed to process storage object %s", obj.key)
        return None


async def _handle_missing_in_db(ctx: _RunContext) -> int:
    items = ctx.diff.missing_in_db
    total = len(items)
    if total == 0:
        return 0

    live_photo_map = await _ensure_live_photo_map(ctx)
    processed = 0
    for obj in items:
        ctx.check_cancelled()
        processed += 1
        snapshot = storage_snapshot(obj)

        if ctx.dry_run:
            ctx.summary.inserted += 1
            action = DataSyncAction(
                type=DataSyncActionType.INSERT,
                storage_key=obj.key,
                photo_id=None,
                applied=False,
                reason=REASON_PREVIEW_INSERT,
                snapshots=ActionSnapshots(after=snapshot),
            )
            await ctx.record(SyncStage.MISSING_IN_DB, processed, total, action)
            continue

        item = await extract_manifest(ctx.extractor, obj, ctx.provider, live_photo_map=live_photo_map)
        if item is None:
            ctx.summary.conflicts += 1
            action = DataSyncAction(
                type=DataSyncActionType.CONFLICT,
                storage_key=obj.key,
                photo_id=None,
                applied=False,
                reason=REASON_EXTRACT_FAILED,
                snapshots=ActionSnapshots(after=snapshot),
            )
            await ctx.record(SyncStage.MISSING_IN_DB, processed, total, action)
            continue

        photo_id = item.get("id")
        await asset_store.upsert_asset(
            ctx.session,
            tenant_id=ctx.tenant_id,
            storage_key=obj.key,
            storage_provider=ctx.provider.name,
            photo_id=photo_id,
            snapshot=snapshot,
            manifest=create_manifest_payload(item),
        )
        ctx.summary.inserted += 1
        action = DataSyncAction(
            type=DataSyncActionType.INSERT,
            storage_key=obj.key,
            photo_id=photo_id,
            applied=True,
            snapshots=ActionSnapshots(after=snapshot),
            manifest_after=item,
        )
        await ctx.record(SyncStage.MISSING_IN_DB, processed, total, action)

    return processed


async def _flag_conflict(
    ctx: _RunContext,
    asset_id: str,
    reason: str,
    payload: ConflictPayload,
) -> None:
    now = now_iso()
    await asset_store.update_by_id(
        ctx.session,
        ctx.tenant_id,
        asset_id,
        {
            "sync_status": SYNC_STATUS_CONFLICT,
            "conflict_reason": reason,
            "conflict_payload": payload.to_dict(),
            "synced_at": now,
            "updated_at": now,
        },
    )


async def _handle_orphan_in_db(ctx: _RunContext) -> int:
    items = ctx.diff.orphan_in_db
    total = len(items)
    processed = 0
    for record in items:
        ctx.check_cancelled()
        processed += 1
        before = record_snapshot(record)
        payload = ConflictPayload(type=ConflictType.MISSING_IN_STORAGE, record_snapshot=before)
        ctx.summary.conflicts += 1
        if not ctx.dry_run:
            await _flag_conflict(ctx, record.id, REASON_MISSING_IN_STORAGE, payload)

        action = DataSyncAction(
            type=DataSyncActionType.CONFLICT,
            storage_key=record.storage_key,
            photo_id=record.photo_id,
            applied=not ctx.dry_run,
            reason=REASON_MISSING_IN_STORAGE,
            conflict_id=record.id,
            conflict_payload=payload,
            snapshots=ActionSnapshots(before=before),
            manifest_before=manifest_data(record.manifest),
        )
        await ctx.record(SyncStage.ORPHAN_IN_DB, processed, total, action)
    return processed


async def _handle_metadata_conflicts(ctx: _RunContext) -> int:
    items = ctx.diff.conflict_candidates
    total = len(items)
    processed = 0
    for candidate in items:
        ctx.check_cancelled()
        processed += 1
        record = candidate.record
        payload = ConflictPayload(
            type=ConflictType.METADATA_MISMATCH,
            record_snapshot=candidate.record_snapshot,
            storage_snapshot=candidate.storage_snapshot,
        )
        ctx.summary.conflicts += 1
        if not ctx.dry_run:
            await _flag_conflict(ctx, record.id, REASON_METADATA_MISMATCH, payload)

        action = DataSyncAction(
            type=DataSyncActionType.CONFLICT,
            storage_key=candidate.storage_object.key,
            photo_id=record.photo_id,
            applied=not ctx.dry_run,
            reason=REASON_METADATA_MISMATCH,
            conflict_id=record.id,
            conflict_payload=payload,
            snapshots=ActionSnapshots(
                before=candidate.record_snapshot, after=candidate.storage_snapshot
            ),
            manifest_before=manifest_data(record.manifest),
        )
        await ctx.record(SyncStage.METADATA_CONFLICTS, processed, total, action)
    return processed


async def _handle_status_reconciliation(ctx: _RunContext) -> int:
    items = ctx.diff.status_reconciliation
    total = len(items)
    processed = 0
    for entry in items:
        ctx.check_cancelled()
        processed += 1
        record = entry.record
        manifest = manifest_data(record.manifest)
        ctx.summary.updated += 1
        if not ctx.dry_run:
            await asset_store.update_by_id(
                ctx.session,
                ctx.tenant_id,
                record.id,
                {
                    **asset_store.snapshot_columns(entry.storage_snapshot),
                    **asset_store.synced_columns(now_iso()),
                },
            )

        action = DataSyncAction(
            type=DataSyncActionType.UPDATE,
            storage_key=record.storage_key,
            photo_id=record.photo_id,
            applied=not ctx.dry_run,
            reason=REASON_STATUS_RECONCILED,
            snapshots=ActionSnapshots(before=entry.record_snapshot, after=entry.storage_snapshot),
            manifest_before=manifest,
            manifest_after=manifest,
        )
        await ctx.record(SyncStage.STATUS_RECONCILIATION, processed, total, action)
    return processed


_STAGES = (
    (SyncStage.MISSING_IN_DB, _handle_missing_in_db),
    (SyncStage.ORPHAN_IN_DB, _handle_orphan_in_db),
    (SyncStage.METADATA_CONFLICTS, _handle_metadata_conflicts),
    (SyncStage.STATUS_RECONCILIATION, _handle_status_reconciliation),
)


async def run_data_sync(
    session: AsyncSession,
    tenant_id: str,
    provider: StorageProvider,
    extractor: ManifestExtractor,
    *,
    dry_run: bool = False,
    on_progress: ProgressEmitter | None = None,
    cancel_event: asyncio.Event | None = None,
) -> DataSyncResult:
    """Run one full reconciliation pass for ``tenant_id``.

    Listing or store errors propagate and abort the run. Per-item extraction
    failures become ``conflict`` actions with ``applied=False``. When
    ``cancel_event`` is set the run stops before the next item and raises
    ``DataSyncCancelledError`` carrying the partial result.
    """
    reporter = ProgressReporter(on_progress)

    storage_objects = await provider.list_images()
    records = await asset_store.select_by_tenant(session, tenant_id)
    diff = classify(storage_objects, records)
    logger.info(
        "Data sync for tenant %s (%s, dry_run=%s): %d objects, %d records, "
        "%d missing, %d orphaned, %d mismatched, %d to reconcile, %d unverifiable",
        tenant_id,
        provider.name,
        dry_run,
        len(storage_objects),
        len(records),
        len(diff.missing_in_db),
        len(diff.orphan_in_db),
        len(diff.conflict_candidates),
        len(diff.status_reconciliation),
        len(diff.unverifiable),
    )

    summary = DataSyncResultSummary(
        storage_objects=len(storage_objects),
        database_records=len(records),
        skipped=len(diff.unverifiable),
    )
    ctx = _RunContext(
        session=session,
        tenant_id=tenant_id,
        provider=provider,
        extractor=extractor,
        dry_run=dry_run,
        reporter=reporter,
        diff=diff,
        result=DataSyncResult(summary=summary),
        cancel_event=cancel_event,
    )
    totals = _stage_totals(diff)
    await reporter.start(summary, totals, dry_run=dry_run)

    for stage, handler in _STAGES:
        total = totals[str(stage)]
        await reporter.stage(stage, StageStatus.START, processed=0, total=total, summary=summary)
        processed = await handler(ctx)
        await reporter.stage(
            stage, StageStatus.COMPLETE, processed=processed, total=total, summary=summary
        )

    await reporter.complete(ctx.result)
    logger.info("Data sync for tenant %s finished: %s", tenant_id, summary.to_dict())
    return ctx.result
