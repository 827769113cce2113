"""Incremental sync based on a timestamp field."""

import time
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from pymongo import DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from src.models.filter import PredicateFilter
from src.models.results import CollectionResult, DatabaseResult
from src.storage.cursor import iter_batches
from src.sync.errors import CollectionSyncError
from src.sync.resolution import resolve_collection_names
from src.utils.formatting import format_duration, format_number
from src.utils.progress import NullProgressReporter, ProgressReporter

log = structlog.stdlib.get_logger()

DEFAULT_LOOKBACK = timedelta(days=7)
PROGRESS_INTERVAL = 100


class IncrementalSyncer:
    """Upserts source documents changed since a timestamp cursor."""

    def __init__(
        self,
        timestamp_field: str = "updatedAt",
        since: datetime | None = None,
        batch_size: int = 1000,
        dry_run: bool = False,
        predicate: PredicateFilter | None = None,
        exclude_collections: list[str] | None = None,
        progress: ProgressReporter | None = None,
        lookback: timedelta = DEFAULT_LOOKBACK,
    ):
        """
        Initialize incremental syncer.

        Args:
            timestamp_field: Document field holding the modification time
            since: Explicit start of the window; derived from the target if None
            batch_size: Cursor page size
            dry_run: Classify documents without writing
            predicate: Extra filter combined with the range predicate
            exclude_collections: Collection names never copied
            progress: Progress line reporter
            lookback: Window used when neither since nor target data is available
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self._timestamp_field: str = timestamp_field
        self._since: datetime | None = since
        self._batch_size: int = batch_size
        self._dry_run: bool = dry_run
        self._predicate: PredicateFilter = predicate or PredicateFilter()
        self._exclude_collections: list[str] = list(exclude_collections or [])
        self._progress: ProgressReporter = progress or NullProgressReporter()
        self._lookback: timedelta = lookback

    def sync(self, source_db: Database, target_db: Database, name: str) -> CollectionResult:
        """
        Upsert documents of one collection changed since the resolved cursor.

        Args:
            source_db: Source database handle
            target_db: Target database handle
            name: Collection name (same on both sides)

        Returns:
            CollectionResult with inserted and updated counts
        """
        start = time.monotonic()
        log.info("incremental_sync_started", collection=name, dry_run=self._dry_run)

        source = source_db[name]
        target = target_db[name]

        try:
            since = self.resolve_since(target)
            predicate = PredicateFilter.since(self._timestamp_field, since).combine(
                self._predicate
            )
            log.info(
                "incremental_window_resolved",
                collection=name,
                since=since.isoformat() if isinstance(since, datetime) else since,
                timestamp_field=self._timestamp_field,
            )

            total = self._count(source, predicate)
            log.info("changed_documents_counted", collection=name, total=format_number(total))

            if total == 0:
                log.warning("no_changed_documents", collection=name)
                return CollectionResult(collection=name)

            inserted, updated = self._apply(source, target, predicate, total)
        except CollectionSyncError as e:
            self._progress.clear()
            duration = time.monotonic() - start
            log.error("incremental_sync_failed", collection=name, error=str(e))
            return CollectionResult(
                collection=name, duration_seconds=duration, success=False, error=str(e)
            )

        duration = time.monotonic() - start
        log.info(
            "incremental_sync_completed",
            collection=name,
            inserted=format_number(inserted),
            updated=format_number(updated),
            duration=format_duration(duration),
        )
        return CollectionResult(
            collection=name,
            count=inserted + updated,
            inserted=inserted,
            updated=updated,
            duration_seconds=duration,
        )

    def sync_database(
        self,
        source_client: MongoClient,
        target_client: MongoClient,
        name: str,
        collections: list[str] | None = None,
        target_name: str | None = None,
    ) -> DatabaseResult:
        """
        Incrementally sync the resolved collections of one database.

        Args:
            source_client: Connected source client
            target_client: Connected target client
            name: Source database name
            collections: Explicit collection names; all collections if empty
            target_name: Target database name (defaults to ``name``)

        Returns:
            DatabaseResult with one child per collection
        """
        start = time.monotonic()
        log.info("incremental_database_sync_started", database=name)

        source_db = source_client[name]
        target_db = target_client[target_name or name]

        try:
            names = resolve_collection_names(source_db, collections or [], self._exclude_collections)
        except Exception as e:
            log.error("incremental_database_sync_failed", database=name, error=str(e))
            return DatabaseResult(
                database=name,
                duration_seconds=time.monotonic() - start,
                error=f"Failed to list collections: {e}",
            )

        log.info("collections_resolved", database=name, count=len(names), collections=names)

        results = [self.sync(source_db, target_db, collection) for collection in names]

        result = DatabaseResult(
            database=name, collections=results, duration_seconds=time.monotonic() - start
        )
        log.info(
            "incremental_database_sync_completed",
            database=name,
            collections=len(results),
            success_count=result.success_count,
            fail_count=result.fail_count,
            total_inserted=format_number(result.total_inserted),
            total_updated=format_number(result.total_updated),
            duration=format_duration(result.duration_seconds),
        )
        return result

    def resolve_since(self, target: Collection) -> Any:
        """
        Resolve the start of the incremental window.

        Priority: the explicit ``since`` value, then the newest timestamp
        already present in the target collection, then now minus the
        lookback window.

        Args:
            target: Target collection

        Returns:
            The cursor value compared with ``$gte`` against the timestamp field
        """
        if self._since is not None:
            return self._since

        try:
            latest = target.find_one(
                {self._timestamp_field: {"$exists": True, "$ne": None}},
                projection={self._timestamp_field: 1},
                sort=[(self._timestamp_field, DESCENDING)],
            )
        except Exception as e:
            log.debug("target_timestamp_lookup_failed", collection=target.name, error=str(e))
            latest = None

        if latest is not None and latest.get(self._timestamp_field) is not None:
            return latest[self._timestamp_field]

        default_since = datetime.now(timezone.utc) - self._lookback
        log.warning(
            "target_timestamp_missing_using_lookback",
            collection=target.name,
            lookback_days=self._lookback.days,
        )
        return default_since

    def _count(self, source: Collection, predicate: PredicateFilter) -> int:
        try:
            return source.count_documents(predicate.as_query())
        except Exception as e:
            raise CollectionSyncError(source.name, f"Failed to count changed documents: {e}") from e

    def _apply(
        self,
        source: Collection,
        target: Collection,
        predicate: PredicateFilter,
        total: int,
    ) -> tuple[int, int]:
        """Upsert (or classify, in dry-run) every matching document.

        Returns:
            Tuple of (inserted, updated)
        """
        inserted = 0
        updated = 0
        processed = 0
        try:
            cursor = source.find(predicate.as_query(), batch_size=self._batch_size)
        except Exception as e:
            raise CollectionSyncError(source.name, f"Failed to open source cursor: {e}") from e

        try:
            for page in iter_batches(cursor, self._batch_size):
                for document in page:
                    if self._apply_one(target, document):
                        inserted += 1
                    else:
                        updated += 1
                    processed += 1

                    if processed % PROGRESS_INTERVAL == 0 or processed == total:
                        self._progress.report(
                            f"{source.name} incremental progress",
                            processed,
                            total,
                            inserted=inserted,
                            updated=updated,
                        )
        except Exception as e:
            raise CollectionSyncError(source.name, f"Failed to apply changes: {e}") from e
        finally:
            cursor.close()
            self._progress.clear()

        return inserted, updated

    def _apply_one(self, target: Collection, document: dict[str, Any]) -> bool:
        """Write or probe one document. Returns True when it is new to the target."""
        key = {"_id": document["_id"]}

        if self._dry_run:
            return target.find_one(key, projection={"_id": 1}) is None

        result = target.replace_one(key, document, upsert=True)
        return result.upserted_id is not None
