"""Copies secondary index definitions from a source to a target collection."""

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pymongo.collection import Collection

from src.storage.errors import ErrorKind, is_benign
from src.sync.errors import IndexReplicationError

log = structlog.stdlib.get_logger()

PRIMARY_KEY_INDEX = "_id_"
# Server bookkeeping fields, plus "key", which create_index takes as its own argument
VOLATILE_INDEX_FIELDS = frozenset({"v", "ns", "key"})


class IndexDescriptor(BaseModel):
    """One index as reported by the source, ready to be recreated."""

    model_config = ConfigDict(frozen=True)

    name: str
    keys: list[tuple[str, Any]] = Field(..., description="Ordered key specification")
    options: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_index_info(cls, info: dict[str, Any]) -> "IndexDescriptor":
        options = {k: v for k, v in info.items() if k not in VOLATILE_INDEX_FIELDS}
        return cls(name=info["name"], keys=list(info["key"].items()), options=options)


class IndexReplicator:
    """Recreates the source collection's indexes on the target, best effort."""

    def replicate(self, source: Collection, target: Collection) -> tuple[int, list[str]]:
        """
        Create every non-primary index of ``source`` on ``target``.

        Indexes that already exist on the target are skipped silently. Any
        other failure is logged and returned as a warning; nothing is raised.

        Args:
            source: Source collection
            target: Target collection

        Returns:
            Tuple of (indexes created, warning messages)
        """
        warnings: list[str] = []

        try:
            descriptors = [
                IndexDescriptor.from_index_info(dict(info))
                for info in source.list_indexes()
                if info["name"] != PRIMARY_KEY_INDEX
            ]
        except Exception as e:
            log.warning("index_listing_failed", collection=source.name, error=str(e))
            return 0, [f"Index replication failed: {e}"]

        created = 0
        for descriptor in descriptors:
            try:
                if self._create(target, descriptor):
                    created += 1
            except IndexReplicationError as e:
                log.warning(
                    "index_creation_failed",
                    collection=target.name,
                    index=descriptor.name,
                    error=str(e),
                )
                warnings.append(str(e))

        if created:
            log.info("indexes_replicated", collection=target.name, count=created)

        return created, warnings

    def _create(self, target: Collection, descriptor: IndexDescriptor) -> bool:
        """Create one index. Returns False when it already existed.

        Raises:
            IndexReplicationError: If creation fails for any other reason
        """
        try:
            target.create_index(descriptor.keys, **descriptor.options)
        except Exception as e:
            if is_benign(e, ErrorKind.INDEX_ALREADY_EXISTS):
                log.debug("index_already_exists", collection=target.name, index=descriptor.name)
                return False
            raise IndexReplicationError(descriptor.name, str(e)) from e

        log.debug("index_created", collection=target.name, index=descriptor.name)
        return True
