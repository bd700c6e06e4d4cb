"""Manifest extraction for storage objects.

The data-sync executor treats the manifest as an opaque document; it only
reads ``id`` and wraps the item as ``{"version", "data"}`` before storing.
"""

from __future__ import annotations

import asyncio
import copy
import io
import logging
import posixpath
from typing import TYPE_CHECKING, Any, Protocol

from PIL import Image, UnidentifiedImageError

from assetsync.models.photo_asset import CURRENT_MANIFEST_VERSION
from assetsync.services.datetime_service import format_timestamp, parse_datetime
from assetsync.services.snapshot_service import storage_snapshot

if TYPE_CHECKING:
    from assetsync.storage.base import StorageObject, StorageProvider

logger = logging.getLogger(__name__)

# EXIF tag ids: DateTimeOriginal lives in the Exif sub-IFD, DateTime in IFD0.
_EXIF_IFD = 0x8769
_TAG_DATETIME_ORIGINAL = 36867
_TAG_DATETIME = 306


class ManifestExtractionError(Exception):
    """The object could not be turned into a manifest item."""


class ManifestExtractor(Protocol):
    async def extract(
        self,
        obj: StorageObject,
        provider: StorageProvider,
        *,
        live_photo_map: dict[str, StorageObject] | None = None,
        existing: dict[str, Any] | None = None,
    ) -> dict[str, Any]: ...


def photo_id_for_key(key: str) -> str:
    """Photo id derived from the file name without extension."""
    return posixpath.splitext(posixpath.basename(key))[0]


def create_manifest_payload(item: dict[str, Any]) -> dict[str, Any]:
    """Wrap a manifest item in the versioned envelope stored on records."""
    return {"version": CURRENT_MANIFEST_VERSION, "data": copy.deepcopy(item)}


def manifest_data(manifest: dict[str, Any] | None) -> dict[str, Any] | None:
    if not manifest:
        return None
    data = manifest.get("data")
    return copy.deepcopy(data) if isinstance(data, dict) else None


def _exif_taken_at(image: Image.Image) -> str | None:
    exif = image.getexif()
    raw = exif.get_ifd(_EXIF_IFD).get(_TAG_DATETIME_ORIGINAL) or exif.get(_TAG_DATETIME)
    if not raw:
        return None
    # EXIF uses "YYYY:MM:DD HH:MM:SS" with no zone.
    text = str(raw).strip().replace(":", "-", 2)
    try:
        return format_timestamp(parse_datetime(text))
    except ValueError:
        logger.debug("Ignoring unparseable EXIF datetime %r", raw)
        return None


def read_image_info(data: bytes) -> dict[str, Any]:
    """Decode image headers with Pillow. Raises ManifestExtractionError."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return {
                "width": image.width,
                "height": image.height,
                "format": image.format,
                "taken_at": _exif_taken_at(image),
            }
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ManifestExtractionError(str(exc)) from exc


class ImageManifestExtractor:
    """Builds manifest items from image bytes, bounded by a per-item timeout."""

    def __init__(self, timeout: float = 60.0) -> None:
        self.timeout = timeout

    async def extract(
        self,
        obj: StorageObject,
        provider: StorageProvider,
        *,
        live_photo_map: dict[str, StorageObject] | None = None,
        existing: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(
                self._extract(obj, provider, live_photo_map=live_photo_map, existing=existing),
                timeout=self.timeout,
            )
        except TimeoutError as exc:
            msg = f"Manifest extraction timed out after {self.timeout}s for {obj.key}"
            raise ManifestExtractionError(msg) from exc

    async def _extract(
        self,
        obj: StorageObject,
        provider: StorageProvider,
        *,
        live_photo_map: dict[str, StorageObject] | None,
        existing: dict[str, Any] | None,
    ) -> dict[str, Any]:
        data = await provider.get_file(obj.key)
        if data is None:
            msg = f"Storage object not found: {obj.key}"
            raise ManifestExtractionError(msg)

        info = await asyncio.to_thread(read_image_info, data)
        item: dict[str, Any] = {
            "id": (existing or {}).get("id") or photo_id_for_key(obj.key),
            "key": obj.key,
            "url": provider.generate_public_url(obj.key),
            "size": obj.size if obj.size is not None else len(data),
            "last_modified": storage_snapshot(obj).last_modified,
            **info,
        }

        video = (live_photo_map or {}).get(obj.key)
        item["is_live_photo"] = video is not None
        if video is not None:
            item["live_photo_video_key"] = video.key
            item["live_photo_video_url"] = provider.generate_public_url(video.key)
        return item
