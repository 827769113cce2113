"""Sync orchestrator: validates a run, owns its connections and dispatches by mode."""

import time

import structlog
from pymongo import MongoClient

from src.models.config import RunConfig, SyncMode
from src.models.results import DatabaseResult, MultiDatabaseResult, RunResult
from src.storage.connection import ConnectionProvider, MongoConnectionProvider
from src.sync.collection_syncer import CollectionSyncer
from src.sync.database_syncer import DatabaseSyncer
from src.sync.incremental_syncer import IncrementalSyncer
from src.sync.instance_syncer import InstanceSyncer
from src.sync.resolution import filter_collection_names
from src.utils.config_loader import ConfigurationError
from src.utils.formatting import format_duration
from src.utils.progress import NullProgressReporter, ProgressReporter
from src.utils.validator import validate_run_config

log = structlog.stdlib.get_logger()


class SyncOrchestrator:
    """Runs one sync at a time between a source and a target endpoint."""

    def __init__(
        self,
        connection_provider: ConnectionProvider | None = None,
        progress: ProgressReporter | None = None,
    ):
        """
        Initialize sync orchestrator.

        Args:
            connection_provider: Opens endpoint clients (pymongo by default)
            progress: Progress line reporter shared by all syncers
        """
        self._connection_provider: ConnectionProvider = (
            connection_provider or MongoConnectionProvider()
        )
        self._progress: ProgressReporter = progress or NullProgressReporter()

    def execute(self, config: RunConfig) -> RunResult:
        """
        Validate, connect, sync and disconnect.

        Per-collection and per-database failures are reported in the result.
        Both connections are closed before returning or raising.

        Args:
            config: Run configuration

        Returns:
            RunResult for the configured mode

        Raises:
            ConfigurationError: If the configuration is invalid
            EndpointConnectionError: If either endpoint cannot be reached
        """
        violations = validate_run_config(config)
        if violations:
            log.error(
                "run_configuration_invalid",
                violations=[str(v) for v in violations],
            )
            raise ConfigurationError.from_violations(violations)

        mode = config.sync_mode
        start = time.monotonic()
        log.info(
            "sync_run_started",
            mode=mode.value,
            source=config.source.address,
            target=config.target.address,
            dry_run=config.dry_run,
            reset_target=config.reset_target,
        )

        clients: list[MongoClient] = []
        try:
            source_client = self._connection_provider.connect(config.source, "source")
            clients.append(source_client)
            target_client = self._connection_provider.connect(config.target, "target")
            clients.append(target_client)

            outcome = self._dispatch(config, source_client, target_client)
        finally:
            self._close(clients)

        result = RunResult(mode=mode, outcome=outcome)
        log.info(
            "sync_run_completed",
            mode=mode.value,
            success=result.success,
            total_count=result.total_count,
            duration=format_duration(time.monotonic() - start),
        )
        return result

    def _dispatch(
        self, config: RunConfig, source_client: MongoClient, target_client: MongoClient
    ) -> DatabaseResult | MultiDatabaseResult:
        mode = config.sync_mode
        if mode is SyncMode.COLLECTION:
            return self._sync_collections(config, source_client, target_client)
        if mode is SyncMode.DATABASE:
            return self._sync_database(config, source_client, target_client)
        if mode is SyncMode.INSTANCE:
            return self._sync_instance(config, source_client, target_client)
        return self._sync_incremental(config, source_client, target_client)

    def _collection_syncer(self, config: RunConfig) -> CollectionSyncer:
        return CollectionSyncer(
            batch_size=config.batch_size,
            reset_target=config.reset_target,
            dry_run=config.dry_run,
            predicate=config.filter,
            progress=self._progress,
        )

    def _database_syncer(self, config: RunConfig) -> DatabaseSyncer:
        return DatabaseSyncer(
            self._collection_syncer(config),
            collections=config.collections,
            exclude_collections=config.exclude_collections,
        )

    def _sync_collections(
        self, config: RunConfig, source_client: MongoClient, target_client: MongoClient
    ) -> DatabaseResult:
        start = time.monotonic()
        database = config.source.database
        source_db = source_client[database]
        target_db = target_client[config.target_database]
        syncer = self._collection_syncer(config)

        names = filter_collection_names(config.collections, config.exclude_collections)
        results = [syncer.sync(source_db, target_db, name) for name in names]

        return DatabaseResult(
            database=database, collections=results, duration_seconds=time.monotonic() - start
        )

    def _sync_database(
        self, config: RunConfig, source_client: MongoClient, target_client: MongoClient
    ) -> DatabaseResult | MultiDatabaseResult:
        syncer = self._database_syncer(config)
        if config.databases:
            return syncer.sync_databases(source_client, target_client, config.databases)
        return syncer.sync_database(
            source_client,
            target_client,
            config.source.database,
            target_name=config.target_database,
        )

    def _sync_instance(
        self, config: RunConfig, source_client: MongoClient, target_client: MongoClient
    ) -> MultiDatabaseResult:
        syncer = InstanceSyncer(
            self._database_syncer(config), exclude_databases=config.exclude_databases
        )
        return syncer.sync_instance(source_client, target_client)

    def _sync_incremental(
        self, config: RunConfig, source_client: MongoClient, target_client: MongoClient
    ) -> DatabaseResult:
        syncer = IncrementalSyncer(
            timestamp_field=config.timestamp_field,
            since=config.since,
            batch_size=config.batch_size,
            dry_run=config.dry_run,
            predicate=config.filter,
            exclude_collections=config.exclude_collections,
            progress=self._progress,
        )
        return syncer.sync_database(
            source_client,
            target_client,
            config.source.database,
            collections=config.collections,
            target_name=config.target_database,
        )

    def _close(self, clients: list[MongoClient]) -> None:
        for client in clients:
            try:
                client.close()
            except Exception as e:
                log.warning("client_close_failed", error=str(e))
        if clients:
            log.debug("connections_closed", count=len(clients))
