"""Snapshot service: comparable metadata views and the metadata hash."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from assetsync.services.data_sync_types import SyncObjectSnapshot
from assetsync.services.datetime_service import normalize_timestamp

if TYPE_CHECKING:
    from datetime import datetime

    from assetsync.models.photo_asset import PhotoAsset
    from assetsync.storage.base import StorageObject

logger = logging.getLogger(__name__)

HASH_SEPARATOR = "::"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace(":", "\\:")


def _normalize_last_modified(value: datetime | str | None) -> str | None:
    try:
        return normalize_timestamp(value)
    except ValueError:
        # Keep unparseable provider values verbatim so the hash stays stable.
        logger.debug("Keeping unparseable last_modified %r as-is", value)
        return str(value).strip()


def compute_metadata_hash(size: int | None, etag: str | None, last_modified: str | None) -> str | None:
    """Join ``etag::size::last_modified`` with each field escaped.

    Returns None when all three fields are absent. Empty strings count as
    absent. Escaping ``\\`` and ``:`` means no field value can produce an
    unescaped separator, so distinct triples never share a hash.
    """
    etag = etag or None
    last_modified = last_modified or None
    if etag is None and size is None and last_modified is None:
        return None
    parts = [
        _escape(etag) if etag is not None else "",
        str(size) if size is not None else "",
        _escape(last_modified) if last_modified is not None else "",
    ]
    return HASH_SEPARATOR.join(parts)


def compute_snapshot(
    size: int | None,
    etag: str | None,
    last_modified: datetime | str | None,
) -> SyncObjectSnapshot:
    """Normalize raw metadata into a snapshot. Pure and deterministic."""
    normalized = _normalize_last_modified(last_modified)
    etag = etag or None
    return SyncObjectSnapshot(
        size=size,
        etag=etag,
        last_modified=normalized,
        metadata_hash=compute_metadata_hash(size, etag, normalized),
    )


def storage_snapshot(obj: StorageObject) -> SyncObjectSnapshot:
    return compute_snapshot(obj.size, obj.etag, obj.last_modified)


def record_snapshot(asset: PhotoAsset) -> SyncObjectSnapshot:
    """Snapshot of a persisted record.

    The stored ``metadata_hash`` wins when present; it was produced by this
    module from the same fields at write time.
    """
    snapshot = compute_snapshot(asset.size, asset.etag, asset.last_modified)
    if asset.metadata_hash and asset.metadata_hash != snapshot.metadata_hash:
        return SyncObjectSnapshot(
            size=snapshot.size,
            etag=snapshot.etag,
            last_modified=snapshot.last_modified,
            metadata_hash=asset.metadata_hash,
        )
    return snapshot
