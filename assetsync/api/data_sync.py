"""Data sync API endpoints: runs, conflict listing and conflict resolution."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assetsync.api.deps import (
    get_manifest_extractor,
    get_session,
    get_session_factory,
    get_settings,
    get_tenant_id,
)
from assetsync.config import Settings
from assetsync.exceptions import DataSyncCancelledError, DataSyncError
from assetsync.schemas.data_sync import (
    DataSyncActionResponse,
    DataSyncConflictResponse,
    DataSyncResultResponse,
    ResolveConflictRequest,
    RunDataSyncRequest,
)
from assetsync.services.conflict_service import list_conflicts, resolve_conflict
from assetsync.services.data_sync_service import run_data_sync
from assetsync.services.datetime_service import now_iso
from assetsync.services.manifest_service import ManifestExtractor
from assetsync.services.progress_service import (
    DataSyncProgressEvent,
    ProgressReporter,
    format_sse,
    format_sse_comment,
)
from assetsync.storage.base import StorageProvider
from assetsync.storage.config import StorageConfig
from assetsync.storage.registry import create_storage_provider, resolve_storage_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/data-sync", tags=["data-sync"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# Runs keep going after a client disconnects until they notice the cancel
# signal; hold references so the tasks are not garbage collected.
_background_runs: set[asyncio.Task[None]] = set()


def _client_error_message(exc: Exception) -> str:
    if isinstance(exc, DataSyncError):
        return str(exc)
    return "Data sync failed"


async def _stream_run(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
    provider: StorageProvider,
    extractor: ManifestExtractor,
    *,
    dry_run: bool,
    heartbeat_seconds: float,
) -> AsyncGenerator[str]:
    """Run a data sync in a task and relay its progress as SSE frames."""
    queue: asyncio.Queue[DataSyncProgressEvent | None] = asyncio.Queue()
    cancel_event = asyncio.Event()
    reporter = ProgressReporter(queue.put_nowait)

    async def _run() -> None:
        try:
            async with session_factory() as session:
                await run_data_sync(
                    session,
                    tenant_id,
                    provider,
                    extractor,
                    dry_run=dry_run,
                    on_progress=queue.put_nowait,
                    cancel_event=cancel_event,
                )
        except DataSyncCancelledError:
            logger.info("Data sync stream for tenant %s cancelled", tenant_id)
        except Exception as exc:
            logger.exception("Data sync run failed for tenant %s", tenant_id)
            await reporter.error(_client_error_message(exc))
        finally:
            queue.put_nowait(None)

    task = asyncio.create_task(_run())
    _background_runs.add(task)
    task.add_done_callback(_background_runs.discard)

    completed = False
    try:
        yield format_sse_comment("connected")
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except TimeoutError:
                yield format_sse_comment(f"keep-alive {now_iso()}")
                continue
            if event is None:
                completed = True
                break
            yield format_sse(event)
    finally:
        if not completed:
            logger.info("Client disconnected; cancelling data sync for tenant %s", tenant_id)
            cancel_event.set()


def _provider_for(settings: Settings, request_config: StorageConfig | None) -> StorageProvider:
    config = resolve_storage_config(settings, request_config)
    return create_storage_provider(config)


@router.post("/run")
async def run_data_sync_stream(
    body: RunDataSyncRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    extractor: Annotated[ManifestExtractor, Depends(get_manifest_extractor)],
) -> StreamingResponse:
    """Run a data sync and stream progress as Server-Sent Events.

    Configuration errors are returned as HTTP 400 before the stream opens.
    """
    provider = _provider_for(settings, body.storage_config)
    return StreamingResponse(
        _stream_run(
            session_factory,
            tenant_id,
            provider,
            extractor,
            dry_run=body.dry_run,
            heartbeat_seconds=settings.sse_heartbeat_seconds,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/run/sync", response_model=DataSyncResultResponse)
async def run_data_sync_blocking(
    body: RunDataSyncRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    session: Annotated[AsyncSession, Depends(get_session)],
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    extractor: Annotated[ManifestExtractor, Depends(get_manifest_extractor)],
) -> DataSyncResultResponse:
    """Run a data sync and return the full result as JSON."""
    provider = _provider_for(settings, body.storage_config)
    result = await run_data_sync(session, tenant_id, provider, extractor, dry_run=body.dry_run)
    return DataSyncResultResponse.model_validate(result.to_dict())


@router.get("/conflicts", response_model=list[DataSyncConflictResponse])
async def get_conflicts(
    session: Annotated[AsyncSession, Depends(get_session)],
    tenant_id: Annotated[str, Depends(get_tenant_id)],
) -> list[DataSyncConflictResponse]:
    """List records currently flagged as conflict."""
    conflicts = await list_conflicts(session, tenant_id)
    return [DataSyncConflictResponse.model_validate(c.to_dict()) for c in conflicts]


@router.post("/conflicts/{conflict_id}/resolve", response_model=DataSyncActionResponse)
async def resolve_conflict_endpoint(
    conflict_id: str,
    body: ResolveConflictRequest,
    settings: Annotated[Settings, Depends(get_settings)],
    session: Annotated[AsyncSession, Depends(get_session)],
    tenant_id: Annotated[str, Depends(get_tenant_id)],
    extractor: Annotated[ManifestExtractor, Depends(get_manifest_extractor)],
) -> DataSyncActionResponse:
    """Resolve one conflict with the chosen strategy."""
    provider = _provider_for(settings, body.storage_config)
    action = await resolve_conflict(
        session,
        tenant_id,
        conflict_id,
        body.strategy,
        provider,
        extractor,
        dry_run=body.dry_run,
    )
    return DataSyncActionResponse.model_validate(action.to_dict())
