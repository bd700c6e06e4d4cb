"""Application-level exception types.

Convention:
- ``InternalServerError``: for errors whose details must never reach clients.
  The global handler logs the full message at ERROR and returns a generic
  "Internal server error" (500) to the client.
- ``DataSyncError`` subclasses: data-sync failures that are safe to forward to
  clients. Each maps to one HTTP status in ``assetsync/main.py``.
- ``ValueError``: for business logic validation errors (422).
- ``DatabaseConfigurationError``: raised at startup, before the app serves requests.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from assetsync.services.data_sync_types import DataSyncResult


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients."""


class DataSyncError(Exception):
    """Base class for data-sync failures with a client-safe message."""


class StorageConfigurationError(DataSyncError):
    """No usable storage backend is configured. Raised before any listing (400)."""


class ConflictNotFoundError(DataSyncError):
    """The conflict record does not exist for this tenant (404)."""


class InvalidConflictStateError(DataSyncError):
    """The record is not in conflict state, or its payload is unusable (409)."""


class ImageProcessingFailedError(DataSyncError):
    """A resolution could not be satisfied against current storage (422)."""


class DatabaseConfigurationError(Exception):
    """The configured database URL uses a dialect the asset store cannot write to."""


class DataSyncCancelledError(DataSyncError):
    """A run was cancelled between items. Applied mutations are kept."""

    def __init__(self, message: str, result: DataSyncResult) -> None:
        super().__init__(message)
        self.result = result
