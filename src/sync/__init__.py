"""Synchronization components for copying MongoDB data between endpoints."""

from src.sync.collection_syncer import CollectionSyncer
from src.sync.database_syncer import DatabaseSyncer
from src.sync.errors import (
    CollectionSyncError,
    EndpointConnectionError,
    IndexReplicationError,
    SyncError,
)
from src.sync.incremental_syncer import IncrementalSyncer
from src.sync.index_replicator import IndexDescriptor, IndexReplicator
from src.sync.instance_syncer import InstanceSyncer
from src.sync.orchestrator import SyncOrchestrator

__all__ = [
    "CollectionSyncer",
    "CollectionSyncError",
    "DatabaseSyncer",
    "EndpointConnectionError",
    "IncrementalSyncer",
    "IndexDescriptor",
    "IndexReplicationError",
    "IndexReplicator",
    "InstanceSyncer",
    "SyncError",
    "SyncOrchestrator",
]
