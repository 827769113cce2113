"""Sequential sync of every resolved collection in one or more databases."""

import time

import structlog
from pymongo import MongoClient

from src.models.results import CollectionResult, DatabaseResult, MultiDatabaseResult
from src.sync.collection_syncer import CollectionSyncer
from src.sync.resolution import resolve_collection_names
from src.utils.formatting import format_duration, format_number

log = structlog.stdlib.get_logger()


class DatabaseSyncer:
    """Drives a CollectionSyncer over the collections of whole databases."""

    def __init__(
        self,
        collection_syncer: CollectionSyncer,
        collections: list[str] | None = None,
        exclude_collections: list[str] | None = None,
    ):
        """
        Initialize database syncer.

        Args:
            collection_syncer: Syncer used for each collection
            collections: Explicit collection names; all collections if empty
            exclude_collections: Collection names never copied
        """
        self._collection_syncer: CollectionSyncer = collection_syncer
        self._collections: list[str] = list(collections or [])
        self._exclude_collections: list[str] = list(exclude_collections or [])

    def sync_database(
        self,
        source_client: MongoClient,
        target_client: MongoClient,
        name: str,
        target_name: str | None = None,
    ) -> DatabaseResult:
        """
        Sync the resolved collections of one database, one after another.

        Args:
            source_client: Connected source client
            target_client: Connected target client
            name: Source database name
            target_name: Target database name (defaults to ``name``)

        Returns:
            DatabaseResult with one child per collection
        """
        start = time.monotonic()
        log.info("database_sync_started", database=name, target_database=target_name or name)

        source_db = source_client[name]
        target_db = target_client[target_name or name]

        try:
            names = resolve_collection_names(
                source_db, self._collections, self._exclude_collections
            )
        except Exception as e:
            duration = time.monotonic() - start
            log.error("database_sync_failed", database=name, error=str(e))
            return DatabaseResult(
                database=name,
                duration_seconds=duration,
                error=f"Failed to list collections: {e}",
            )

        if not names:
            log.warning("no_collections_to_sync", database=name)
            return DatabaseResult(database=name, duration_seconds=time.monotonic() - start)

        log.info("collections_resolved", database=name, count=len(names), collections=names)

        results: list[CollectionResult] = []
        for collection in names:
            results.append(self._collection_syncer.sync(source_db, target_db, collection))

        result = DatabaseResult(
            database=name,
            collections=results,
            duration_seconds=time.monotonic() - start,
        )
        self._log_summary(result)
        return result

    def sync_databases(
        self,
        source_client: MongoClient,
        target_client: MongoClient,
        names: list[str],
    ) -> MultiDatabaseResult:
        """Sync several databases in order, each under its own name on the target."""
        start = time.monotonic()
        log.info("multi_database_sync_started", databases=names, count=len(names))

        results = [self.sync_database(source_client, target_client, name) for name in names]

        result = MultiDatabaseResult(databases=results, duration_seconds=time.monotonic() - start)
        log.info(
            "multi_database_sync_completed",
            total_databases=result.total_databases,
            success_count=result.success_count,
            fail_count=result.fail_count,
            total_count=format_number(result.total_count),
            duration=format_duration(result.duration_seconds),
        )
        return result

    def _log_summary(self, result: DatabaseResult) -> None:
        log.info(
            "database_sync_completed",
            database=result.database,
            collections=len(result.collections),
            success_count=result.success_count,
            fail_count=result.fail_count,
            total_count=format_number(result.total_count),
            duration=format_duration(result.duration_seconds),
        )
        for failure in result.failures():
            log.error(
                "collection_failed_in_database",
                database=result.database,
                collection=failure.collection,
                error=failure.error,
            )
