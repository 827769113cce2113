"""Sync of every user database on a MongoDB instance."""

import time

import structlog
from pymongo import MongoClient

from src.models.results import MultiDatabaseResult
from src.sync.database_syncer import DatabaseSyncer
from src.sync.resolution import resolve_database_names
from src.utils.formatting import format_duration, format_number

log = structlog.stdlib.get_logger()


class InstanceSyncer:
    """Resolves the databases of an instance and hands them to a DatabaseSyncer."""

    def __init__(self, database_syncer: DatabaseSyncer, exclude_databases: list[str] | None = None):
        self._database_syncer: DatabaseSyncer = database_syncer
        self._exclude_databases: list[str] = list(exclude_databases or [])

    def sync_instance(self, source_client: MongoClient, target_client: MongoClient) -> MultiDatabaseResult:
        """
        Sync all databases of the source instance except system and excluded ones.

        Returns:
            MultiDatabaseResult whose duration covers the whole instance pass
        """
        start = time.monotonic()
        log.info("instance_sync_started", exclude_databases=self._exclude_databases)

        try:
            names = resolve_database_names(source_client, self._exclude_databases)
        except Exception as e:
            log.error("instance_sync_failed", error=str(e))
            return MultiDatabaseResult(
                duration_seconds=time.monotonic() - start,
                error=f"Failed to list databases: {e}",
            )

        if not names:
            log.warning("no_databases_to_sync")
            return MultiDatabaseResult(duration_seconds=time.monotonic() - start)

        log.info("databases_resolved", count=len(names), databases=names)

        result = self._database_syncer.sync_databases(source_client, target_client, names)
        result = result.model_copy(update={"duration_seconds": time.monotonic() - start})

        log.info(
            "instance_sync_completed",
            total_databases=result.total_databases,
            total_count=format_number(result.total_count),
            duration=format_duration(result.duration_seconds),
            success=result.success,
        )
        return result
