"""Batched copy of a single collection."""

import time

import structlog
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import BulkWriteError

from src.models.filter import PredicateFilter
from src.models.results import CollectionResult
from src.storage.cursor import iter_batches
from src.storage.errors import ErrorKind, classify_error, is_benign
from src.sync.errors import CollectionSyncError
from src.sync.index_replicator import IndexReplicator
from src.utils.formatting import format_duration, format_number, format_speed
from src.utils.progress import NullProgressReporter, ProgressReporter

log = structlog.stdlib.get_logger()


class CollectionSyncer:
    """Copies the matching documents of one collection in bounded pages."""

    def __init__(
        self,
        batch_size: int = 1000,
        reset_target: bool = False,
        dry_run: bool = False,
        predicate: PredicateFilter | None = None,
        progress: ProgressReporter | None = None,
        index_replicator: IndexReplicator | None = None,
    ):
        """
        Initialize collection syncer.

        Args:
            batch_size: Maximum documents buffered before each write
            reset_target: Drop the target collection before copying
            dry_run: Count and page through documents without writing
            predicate: Filter restricting which source documents are copied
            progress: Progress line reporter
            index_replicator: Index replicator (a default one if None)
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        self._batch_size: int = batch_size
        self._reset_target: bool = reset_target
        self._dry_run: bool = dry_run
        self._predicate: PredicateFilter = predicate or PredicateFilter()
        self._progress: ProgressReporter = progress or NullProgressReporter()
        self._index_replicator: IndexReplicator = index_replicator or IndexReplicator()

    def sync(self, source_db: Database, target_db: Database, name: str) -> CollectionResult:
        """
        Copy one collection from ``source_db`` to ``target_db``.

        Failures are captured in the returned result, never raised, so the
        caller can move on to the next collection.

        Args:
            source_db: Source database handle
            target_db: Target database handle
            name: Collection name (same on both sides)

        Returns:
            CollectionResult describing the copy
        """
        start = time.monotonic()
        log.info("collection_sync_started", collection=name, dry_run=self._dry_run)

        source = source_db[name]
        target = target_db[name]

        try:
            total = self._count(source)
            log.info("source_documents_counted", collection=name, total=format_number(total))

            if total == 0:
                log.warning("collection_empty_skipped", collection=name)
                return CollectionResult(collection=name, count=0)

            if self._reset_target and not self._dry_run:
                self._drop_target(target)

            synced, rejected, warnings = self._copy(source, target, total)
        except CollectionSyncError as e:
            self._progress.clear()
            duration = time.monotonic() - start
            log.error("collection_sync_failed", collection=name, error=str(e))
            return CollectionResult(
                collection=name,
                count=0,
                duration_seconds=duration,
                success=False,
                error=str(e),
            )

        if not self._dry_run:
            _, index_warnings = self._index_replicator.replicate(source, target)
            warnings.extend(index_warnings)

        duration = time.monotonic() - start

        if rejected:
            error = f"{rejected} of {total} documents were rejected by the target"
            log.error("collection_sync_incomplete", collection=name, synced=synced, rejected=rejected)
            return CollectionResult(
                collection=name,
                count=synced,
                duration_seconds=duration,
                success=False,
                error=error,
                warnings=warnings,
            )

        log.info(
            "collection_sync_completed",
            collection=name,
            count=format_number(synced),
            duration=format_duration(duration),
            speed=format_speed(synced, duration),
        )

        return CollectionResult(
            collection=name,
            count=synced,
            duration_seconds=duration,
            warnings=warnings,
        )

    def _count(self, source: Collection) -> int:
        try:
            return source.count_documents(self._predicate.as_query())
        except Exception as e:
            raise CollectionSyncError(source.name, f"Failed to count documents: {e}") from e

    def _drop_target(self, target: Collection) -> None:
        try:
            target.drop()
        except Exception as e:
            if is_benign(e, ErrorKind.NAMESPACE_NOT_FOUND):
                log.debug("target_collection_missing", collection=target.name)
                return
            raise CollectionSyncError(target.name, f"Failed to drop target collection: {e}") from e
        log.info("target_collection_dropped", collection=target.name)

    def _copy(
        self, source: Collection, target: Collection, total: int
    ) -> tuple[int, int, list[str]]:
        """Stream matching documents page by page into the target.

        Returns:
            Tuple of (documents written or counted, documents rejected, warnings)
        """
        synced = 0
        rejected = 0
        warnings: list[str] = []
        try:
            cursor = source.find(self._predicate.as_query(), batch_size=self._batch_size)
        except Exception as e:
            raise CollectionSyncError(source.name, f"Failed to open source cursor: {e}") from e

        try:
            for page in iter_batches(cursor, self._batch_size):
                if not self._dry_run:
                    page_rejected = self._insert_page(target, page, warnings)
                    rejected += page_rejected
                    synced += len(page) - page_rejected
                else:
                    synced += len(page)
                self._progress.report(f"{source.name} progress", synced + rejected, total)
        except Exception as e:
            raise CollectionSyncError(source.name, f"Failed to copy documents: {e}") from e
        finally:
            cursor.close()
            self._progress.clear()

        return synced, rejected, warnings

    def _insert_page(self, target: Collection, page: list[dict], warnings: list[str]) -> int:
        """Insert one page unordered. Returns how many documents were rejected.

        Write concern failures do not reject documents; they are appended to
        ``warnings`` since the writes were not confirmed.
        """
        try:
            target.insert_many(page, ordered=False)
        except BulkWriteError as e:
            write_errors = e.details.get("writeErrors", [])
            concern_errors = e.details.get("writeConcernErrors", [])
            if write_errors:
                log.warning(
                    "page_partially_rejected",
                    collection=target.name,
                    rejected=len(write_errors),
                    kind=classify_error(e).value,
                    first_error=write_errors[0].get("errmsg"),
                )
            if concern_errors:
                message = concern_errors[0].get("errmsg", "write concern error")
                log.warning(
                    "page_write_concern_failed",
                    collection=target.name,
                    documents=len(page),
                    error=message,
                )
                warnings.append(
                    f"Write concern not satisfied for {len(page)} documents: {message}"
                )
            return len(write_errors)
        return 0
