"""Photo asset model: the last known state of one storage object."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import JSON, BigInteger, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from assetsync.models.base import Base

DATABASE_ONLY_PROVIDER = "database-only"
CURRENT_MANIFEST_VERSION = "v7"

SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_SYNCED = "synced"
SYNC_STATUS_CONFLICT = "conflict"


def _new_asset_id() -> str:
    return uuid.uuid4().hex


class PhotoAsset(Base):
    """Imported photo asset, unique per (tenant_id, storage_key)."""

    __tablename__ = "photo_assets"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_asset_id)
    tenant_id: Mapped[str] = mapped_column(String, nullable=False)
    photo_id: Mapped[str | None] = mapped_column(String, nullable=True)
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    storage_provider: Mapped[str] = mapped_column(String, nullable=False)
    size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    etag: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_modified: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_hash: Mapped[str | None] = mapped_column(Text, nullable=True)
    manifest_version: Mapped[str] = mapped_column(
        String, nullable=False, default=CURRENT_MANIFEST_VERSION
    )
    manifest: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    sync_status: Mapped[str] = mapped_column(String, nullable=False, default=SYNC_STATUS_PENDING)
    conflict_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    conflict_payload: Mapped[dict[str, Any] | None] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    synced_at: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "storage_key", name="uq_photo_asset_tenant_storage_key"),
        Index("ix_photo_asset_tenant_sync_status", "tenant_id", "sync_status"),
    )
