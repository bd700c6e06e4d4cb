"""SQLAlchemy ORM models for AssetSync."""

from assetsync.models.base import Base
from assetsync.models.photo_asset import PhotoAsset

__all__ = [
    "Base",
    "PhotoAsset",
]
