"""Asset store: tenant-scoped reads and writes against ``photo_assets``.

Every write commits on its own so a failure part way through a run keeps the
items already applied.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from assetsync.exceptions import DatabaseConfigurationError
from assetsync.models.photo_asset import (
    CURRENT_MANIFEST_VERSION,
    SYNC_STATUS_CONFLICT,
    SYNC_STATUS_SYNCED,
    PhotoAsset,
)
from assetsync.services.datetime_service import now_iso

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from assetsync.services.data_sync_types import SyncObjectSnapshot

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def snapshot_columns(snapshot: SyncObjectSnapshot) -> dict[str, Any]:
    """Record columns mirroring a storage snapshot."""
    return {
        "size": snapshot.size,
        "etag": snapshot.etag,
        "last_modified": snapshot.last_modified,
        "metadata_hash": snapshot.metadata_hash,
    }


def synced_columns(now: str) -> dict[str, Any]:
    """Columns that mark a record synced and clear conflict state."""
    return {
        "sync_status": SYNC_STATUS_SYNCED,
        "conflict_reason": None,
        "conflict_payload": None,
        "synced_at": now,
        "updated_at": now,
    }


async def select_by_tenant(session: AsyncSession, tenant_id: str) -> list[PhotoAsset]:
    """All records of a tenant in creation order."""
    stmt = (
        select(PhotoAsset)
        .where(PhotoAsset.tenant_id == tenant_id)
        .order_by(PhotoAsset.created_at, PhotoAsset.id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def select_by_id(session: AsyncSession, tenant_id: str, asset_id: str) -> PhotoAsset | None:
    stmt = (
        select(PhotoAsset)
        .where(PhotoAsset.id == asset_id, PhotoAsset.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def select_conflicts(session: AsyncSession, tenant_id: str) -> list[PhotoAsset]:
    stmt = (
        select(PhotoAsset)
        .where(
            PhotoAsset.tenant_id == tenant_id,
            PhotoAsset.sync_status == SYNC_STATUS_CONFLICT,
        )
        .order_by(PhotoAsset.updated_at, PhotoAsset.id)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_asset(
    session: AsyncSession,
    *,
    tenant_id: str,
    storage_key: str,
    storage_provider: str,
    photo_id: str | None,
    snapshot: SyncObjectSnapshot,
    manifest: dict[str, Any],
) -> str:
    """Insert or update the record for ``(tenant_id, storage_key)`` as synced.

    Uses the dialect's ``ON CONFLICT DO UPDATE`` so concurrent writers for the
    same key converge on one row. Returns the record id.
    """
    dialect = session.get_bind().dialect.name
    insert_fn = _INSERT_BY_DIALECT.get(dialect)
    if insert_fn is None:
        msg = f"Upsert is not supported for database dialect {dialect!r}"
        raise DatabaseConfigurationError(msg)

    now = now_iso()
    changes: dict[str, Any] = {
        "photo_id": photo_id,
        "storage_provider": storage_provider,
        **snapshot_columns(snapshot),
        "manifest_version": CURRENT_MANIFEST_VERSION,
        "manifest": manifest,
        **synced_columns(now),
    }
    stmt = insert_fn(PhotoAsset).values(
        tenant_id=tenant_id,
        storage_key=storage_key,
        created_at=now,
        **changes,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[PhotoAsset.tenant_id, PhotoAsset.storage_key],
        set_=changes,
    ).returning(PhotoAsset.id)
    result = await session.execute(stmt)
    asset_id: str = result.scalar_one()
    await session.commit()
    logger.debug("Upserted asset %s for %s/%s", asset_id, tenant_id, storage_key)
    return asset_id


async def update_by_id(
    session: AsyncSession,
    tenant_id: str,
    asset_id: str,
    values: dict[str, Any],
    *,
    require_conflict: bool = False,
) -> int:
    """Update one record. Returns the number of rows changed.

    With ``require_conflict`` the update only applies while the record is
    still flagged, so a concurrent resolution changes zero rows.
    """
    stmt = update(PhotoAsset).where(PhotoAsset.id == asset_id, PhotoAsset.tenant_id == tenant_id)
    if require_conflict:
        stmt = stmt.where(PhotoAsset.sync_status == SYNC_STATUS_CONFLICT)
    result = await session.execute(stmt.values(**values))
    await session.commit()
    return result.rowcount  # type: ignore[attr-defined, no-any-return]


async def delete_by_id(
    session: AsyncSession,
    tenant_id: str,
    asset_id: str,
    *,
    require_conflict: bool = False,
) -> int:
    """Delete one record. Returns the number of rows removed."""
    stmt = delete(PhotoAsset).where(PhotoAsset.id == asset_id, PhotoAsset.tenant_id == tenant_id)
    if require_conflict:
        stmt = stmt.where(PhotoAsset.sync_status == SYNC_STATUS_CONFLICT)
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount  # type: ignore[attr-defined, no-any-return]
