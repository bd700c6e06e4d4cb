"""Shared API dependencies: settings, DB session, tenant, manifest extractor."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assetsync.config import Settings
from assetsync.services.manifest_service import ManifestExtractor


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Get the session factory from app state.

    Streaming endpoints open their own session because the response body
    outlives the request-scoped one.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    return session_factory


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_manifest_extractor(request: Request) -> ManifestExtractor:
    """Get the manifest extractor from app state."""
    extractor: ManifestExtractor = request.app.state.manifest_extractor
    return extractor


def get_tenant_id(
    settings: Annotated[Settings, Depends(get_settings)],
    x_tenant_id: Annotated[str | None, Header()] = None,
) -> str:
    """Tenant from the ``X-Tenant-Id`` header, else the configured default."""
    if x_tenant_id is None:
        return settings.default_tenant_id
    tenant_id = x_tenant_id.strip()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-Id header must not be empty",
        )
    return tenant_id
