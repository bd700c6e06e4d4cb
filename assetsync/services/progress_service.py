"""Progress events for data-sync runs and their SSE framing."""

from __future__ import annotations

import copy
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from assetsync.services.data_sync_types import (
        DataSyncAction,
        DataSyncResult,
        DataSyncResultSummary,
        SyncStage,
    )

logger = logging.getLogger(__name__)


class ProgressEventType(StrEnum):
    START = "start"
    STAGE = "stage"
    ACTION = "action"
    COMPLETE = "complete"
    ERROR = "error"


class StageStatus(StrEnum):
    START = "start"
    COMPLETE = "complete"


@dataclass(frozen=True)
class DataSyncProgressEvent:
    """One progress notification. ``payload`` is JSON-ready and owned by the event."""

    type: ProgressEventType
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": str(self.type), "payload": self.payload}


ProgressEmitter = Callable[[DataSyncProgressEvent], Awaitable[None] | None]


def format_sse(event: DataSyncProgressEvent) -> str:
    """Frame an event as a Server-Sent Events ``progress`` message."""
    data = json.dumps(event.to_dict(), ensure_ascii=False)
    return f"event: progress\ndata: {data}\n\n"


def format_sse_comment(text: str) -> str:
    return f": {text}\n\n"


class ProgressReporter:
    """Maps run milestones to events and hands them to an optional emitter.

    Emitters may be plain callables or coroutine functions. Payloads are deep
    copies so consumers never observe later mutation of the run state.
    """

    def __init__(self, emitter: ProgressEmitter | None = None) -> None:
        self._emitter = emitter

    async def _emit(self, event_type: ProgressEventType, payload: dict[str, Any]) -> None:
        if self._emitter is None:
            return
        outcome = self._emitter(DataSyncProgressEvent(type=event_type, payload=copy.deepcopy(payload)))
        if inspect.isawaitable(outcome):
            await outcome

    async def start(
        self,
        summary: DataSyncResultSummary,
        totals: dict[str, int],
        *,
        dry_run: bool,
    ) -> None:
        await self._emit(
            ProgressEventType.START,
            {"summary": summary.to_dict(), "totals": dict(totals), "options": {"dry_run": dry_run}},
        )

    async def stage(
        self,
        stage: SyncStage,
        status: StageStatus,
        *,
        processed: int,
        total: int,
        summary: DataSyncResultSummary,
    ) -> None:
        await self._emit(
            ProgressEventType.STAGE,
            {
                "stage": str(stage),
                "status": str(status),
                "processed": processed,
                "total": total,
                "summary": summary.to_dict(),
            },
        )

    async def action(
        self,
        stage: SyncStage,
        *,
        index: int,
        total: int,
        action: DataSyncAction,
        summary: DataSyncResultSummary,
    ) -> None:
        await self._emit(
            ProgressEventType.ACTION,
            {
                "stage": str(stage),
                "index": index,
                "total": total,
                "action": action.to_dict(),
                "summary": summary.to_dict(),
            },
        )

    async def complete(self, result: DataSyncResult) -> None:
        await self._emit(ProgressEventType.COMPLETE, result.to_dict())

    async def error(self, message: str) -> None:
        await self._emit(ProgressEventType.ERROR, {"message": message})
