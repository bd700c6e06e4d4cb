"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assetsync import __version__
from assetsync.api.deps import get_session, get_settings
from assetsync.config import Settings
from assetsync.models.photo_asset import PhotoAsset

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    default_storage: str | None


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """Report whether the asset table is reachable and which provider runs default to.

    A missing default provider does not degrade the service, since each run
    request may carry its own storage configuration.
    """
    db_status = "ok"
    try:
        await session.execute(select(func.count()).select_from(PhotoAsset))
    except SQLAlchemyError:
        logger.warning("Health check query on photo_assets failed", exc_info=True)
        db_status = "error"

    storage = settings.storage_config
    return HealthResponse(
        status="ok" if db_status == "ok" else "degraded",
        version=__version__,
        database=db_status,
        default_storage=storage.provider if storage is not None else None,
    )
