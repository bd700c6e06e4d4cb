"""Storage provider interface and listing helpers."""

from __future__ import annotations

import logging
import posixpath
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".heic", ".heif", ".avif"}
)
LIVE_PHOTO_VIDEO_EXTENSIONS = frozenset({".mov", ".mp4"})


@dataclass(frozen=True)
class StorageObject:
    """One entry of a provider listing."""

    key: str
    size: int | None = None
    etag: str | None = None
    last_modified: datetime | str | None = None


def normalize_key(key: str) -> str:
    """Use forward slashes and strip leading/trailing separators."""
    return key.replace("\\", "/").strip("/")


def _split_ext(key: str) -> tuple[str, str]:
    base, ext = posixpath.splitext(key)
    return base, ext.lower()


def is_image_key(key: str) -> bool:
    return _split_ext(key)[1] in SUPPORTED_IMAGE_EXTENSIONS


def detect_live_photos(objects: list[StorageObject]) -> dict[str, StorageObject]:
    """Pair images with their motion sidecar by shared directory and base name.

    Returns a map of image key -> video object. Base names compare
    case-insensitively (``IMG_1.HEIC`` pairs with ``img_1.mov``).
    """
    videos: dict[str, StorageObject] = {}
    for obj in objects:
        base, ext = _split_ext(obj.key)
        if ext in LIVE_PHOTO_VIDEO_EXTENSIONS:
            videos.setdefault(base.lower(), obj)

    pairs: dict[str, StorageObject] = {}
    for obj in objects:
        base, ext = _split_ext(obj.key)
        if ext not in SUPPORTED_IMAGE_EXTENSIONS:
            continue
        video = videos.get(base.lower())
        if video is not None:
            pairs[obj.key] = video
    return pairs


class StorageProvider(ABC):
    """Capability interface shared by every storage variant."""

    name: ClassVar[str]

    def __init__(
        self,
        *,
        prefix: str | None = None,
        exclude_regex: str | None = None,
        max_file_limit: int | None = None,
    ) -> None:
        self.prefix = normalize_key(prefix) if prefix else ""
        self.exclude_pattern = re.compile(exclude_regex) if exclude_regex else None
        self.max_file_limit = max_file_limit

    @abstractmethod
    async def list_all_files(self) -> list[StorageObject]:
        """List every object under the configured prefix."""

    @abstractmethod
    async def get_file(self, key: str) -> bytes | None:
        """Return object content, or None if the key does not exist."""

    @abstractmethod
    async def upload_file(self, key: str, data: bytes) -> StorageObject:
        """Store ``data`` under ``key`` and return the new listing entry."""

    @abstractmethod
    async def delete_file(self, key: str) -> None:
        """Remove ``key``. Missing keys are not an error."""

    @abstractmethod
    def generate_public_url(self, key: str) -> str:
        """Return a URL clients can fetch ``key`` from."""

    async def list_images(self) -> list[StorageObject]:
        """List image objects, applying ``exclude_regex`` and ``max_file_limit``."""
        images: list[StorageObject] = []
        for obj in await self.list_all_files():
            if not is_image_key(obj.key):
                continue
            if self.exclude_pattern is not None and self.exclude_pattern.search(obj.key):
                continue
            images.append(obj)
            if self.max_file_limit is not None and len(images) >= self.max_file_limit:
                logger.info(
                    "%s listing truncated at max_file_limit=%d", self.name, self.max_file_limit
                )
                break
        return images

    def _full_key(self, key: str) -> str:
        key = normalize_key(key)
        if self.prefix and not key.startswith(f"{self.prefix}/"):
            return f"{self.prefix}/{key}"
        return key
