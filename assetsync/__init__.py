"""AssetSync: reconcile object storage with imported photo asset records."""

__version__ = "0.1.0"
