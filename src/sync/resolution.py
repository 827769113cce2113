"""Resolution of which collections and databases a run touches."""

from collections.abc import Iterable

from pymongo import MongoClient
from pymongo.database import Database

SYSTEM_COLLECTION_PREFIX = "system."
SYSTEM_DATABASES = frozenset({"admin", "local", "config"})


def filter_collection_names(names: Iterable[str], excluded: Iterable[str] = ()) -> list[str]:
    """Drop excluded and ``system.`` collections, keeping the input order."""
    excluded_set = set(excluded)
    return [
        name
        for name in names
        if name not in excluded_set and not name.startswith(SYSTEM_COLLECTION_PREFIX)
    ]


def resolve_collection_names(
    source_db: Database,
    explicit: Iterable[str] = (),
    excluded: Iterable[str] = (),
) -> list[str]:
    """Collections to copy from ``source_db``.

    An explicit list is used verbatim (in its order), otherwise every
    collection of the source database is enumerated. System collections are
    always removed, even when listed explicitly.
    """
    names = list(explicit) or source_db.list_collection_names()
    return filter_collection_names(names, excluded)


def filter_database_names(names: Iterable[str], excluded: Iterable[str] = ()) -> list[str]:
    excluded_set = set(excluded)
    return [name for name in names if name not in SYSTEM_DATABASES and name not in excluded_set]


def resolve_database_names(source_client: MongoClient, excluded: Iterable[str] = ()) -> list[str]:
    """Every user database on the source instance minus the excluded ones."""
    return filter_database_names(source_client.list_database_names(), excluded)
