"""Exceptions raised by the sync engine."""

from src.storage.errors import EndpointConnectionError

__all__ = [
    "SyncError",
    "EndpointConnectionError",
    "CollectionSyncError",
    "IndexReplicationError",
]


class SyncError(Exception):
    """Base class for failures inside one sync step."""


class CollectionSyncError(SyncError):
    """Counting, resetting or copying one collection failed."""

    def __init__(self, collection: str, message: str):
        super().__init__(message)
        self.collection = collection


class IndexReplicationError(SyncError):
    """One index could not be created on the target."""

    def __init__(self, index_name: str, message: str):
        super().__init__(f"Index {index_name} could not be created: {message}")
        self.index_name = index_name
