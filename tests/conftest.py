"""Shared fixtures: an in-memory stand-in for MongoDB servers.

The fake implements only the slice of the pymongo client API the sync engine
uses (counting, finding, bulk inserts, replace-upserts, drops, indexes and
listings) and raises real pymongo exceptions for the failure paths.
"""

import copy
from types import SimpleNamespace
from typing import Any, Callable

import pytest
from pymongo.errors import BulkWriteError, OperationFailure

from src.models.config import EndpointConfig, RunConfig

_MISSING = object()


def _get_field(document: dict[str, Any], field: str) -> Any:
    value: Any = document
    for part in field.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _match_operator(value: Any, op: str, operand: Any) -> bool:
    if op == "$exists":
        return (value is not _MISSING) == bool(operand)
    if op == "$ne":
        return value is _MISSING or value != operand
    if op == "$in":
        return value is not _MISSING and value in operand
    if value is _MISSING or value is None:
        return False
    if op == "$gte":
        return value >= operand
    if op == "$gt":
        return value > operand
    if op == "$lte":
        return value <= operand
    if op == "$lt":
        return value < operand
    if op == "$eq":
        return value == operand
    raise NotImplementedError(op)


def matches(document: dict[str, Any], query: dict[str, Any]) -> bool:
    for key, condition in query.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
            continue
        value = _get_field(document, key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            if not all(_match_operator(value, op, operand) for op, operand in condition.items()):
                return False
        elif value is _MISSING or value != condition:
            return False
    return True


class FakeCursor:
    def __init__(
        self,
        documents: list[dict[str, Any]],
        fail_after: int | None = None,
        error: Exception | None = None,
    ):
        self._documents = documents
        self._fail_after = fail_after
        self._error = error
        self.closed = False

    def __iter__(self):
        for position, document in enumerate(self._documents):
            if self._fail_after is not None and position >= self._fail_after:
                raise self._error or OperationFailure("cursor killed", code=43)
            yield copy.deepcopy(document)

    def close(self) -> None:
        self.closed = True


class FakeCollection:
    def __init__(self, database: "FakeDatabase", name: str):
        self.database = database
        self.name = name
        self.documents: dict[Any, dict[str, Any]] = {}
        self.indexes: dict[str, dict[str, Any]] = {}
        self.exists = False
        self.drop_calls = 0
        self.insert_calls = 0
        self.fail_count: Exception | None = None
        self.fail_find_after: int | None = None
        self.fail_find_error: Exception | None = None
        self.fail_insert: Exception | None = None
        self.write_concern_error: dict[str, Any] | None = None
        self.fail_index_names: set[str] = set()
        self.fail_index_error: Exception | None = None
        self.fail_list_indexes: Exception | None = None

    # query side

    def _matching(self, query: dict[str, Any]) -> list[dict[str, Any]]:
        return [doc for doc in self.documents.values() if matches(doc, query)]

    def count_documents(self, query: dict[str, Any]) -> int:
        if self.fail_count is not None:
            raise self.fail_count
        return len(self._matching(query))

    def find(self, query: dict[str, Any] | None = None, batch_size: int = 0) -> FakeCursor:
        return FakeCursor(self._matching(query or {}), self.fail_find_after, self.fail_find_error)

    def find_one(
        self,
        query: dict[str, Any] | None = None,
        projection: dict[str, Any] | None = None,
        sort: list[tuple[str, int]] | None = None,
    ) -> dict[str, Any] | None:
        found = self._matching(query or {})
        if sort:
            field, direction = sort[0]
            found.sort(key=lambda d: _get_field(d, field), reverse=direction < 0)
        return copy.deepcopy(found[0]) if found else None

    def list_indexes(self):
        if self.fail_list_indexes is not None:
            raise self.fail_list_indexes
        if not self.exists:
            return iter([])
        primary = {"v": 2, "key": {"_id": 1}, "name": "_id_"}
        return iter([primary] + [copy.deepcopy(i) for i in self.indexes.values()])

    # write side

    def _create(self) -> None:
        self.exists = True
        self.database.collections[self.name] = self

    def insert_many(self, documents: list[dict[str, Any]], ordered: bool = True):
        self.insert_calls += 1
        if self.fail_insert is not None:
            raise self.fail_insert
        self._create()
        write_errors = []
        inserted = 0
        for index, document in enumerate(documents):
            if document["_id"] in self.documents:
                write_errors.append(
                    {"index": index, "code": 11000, "errmsg": f"E11000 duplicate key {document['_id']!r}"}
                )
                if ordered:
                    break
                continue
            self.documents[document["_id"]] = copy.deepcopy(document)
            inserted += 1
        if write_errors or self.write_concern_error is not None:
            raise BulkWriteError(
                {
                    "writeErrors": write_errors,
                    "writeConcernErrors": [self.write_concern_error] if self.write_concern_error else [],
                    "nInserted": inserted,
                }
            )
        return SimpleNamespace(inserted_ids=[d["_id"] for d in documents])

    def replace_one(self, query: dict[str, Any], replacement: dict[str, Any], upsert: bool = False):
        self._create()
        key = query["_id"]
        if key in self.documents:
            self.documents[key] = copy.deepcopy(replacement)
            return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
        if upsert:
            self.documents[key] = copy.deepcopy(replacement)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=key)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)

    def drop(self) -> None:
        self.drop_calls += 1
        if not self.exists:
            raise OperationFailure("ns not found", code=26)
        self.documents.clear()
        self.indexes.clear()
        self.exists = False
        self.database.collections.pop(self.name, None)

    def create_index(self, keys: list[tuple[str, Any]], **options: Any) -> str:
        name = options.get("name") or "_".join(f"{k}_{v}" for k, v in keys)
        if self.fail_index_error is not None:
            raise self.fail_index_error
        if name in self.fail_index_names:
            raise OperationFailure(f"cannot create index {name}", code=67)
        spec = {"v": 2, "key": dict(keys), **options, "name": name}
        existing = self.indexes.get(name)
        if existing is not None:
            if existing != spec:
                raise OperationFailure(f"Index with name: {name} already exists", code=86)
            raise OperationFailure(f"Index already exists: {name}", code=85)
        self._create()
        self.indexes[name] = spec
        return name

    # test helpers

    def seed(self, documents: list[dict[str, Any]]) -> None:
        self._create()
        for document in documents:
            self.documents[document["_id"]] = copy.deepcopy(document)


class FakeDatabase:
    def __init__(self, client: "FakeClient", name: str):
        self.client = client
        self.name = name
        self.collections: dict[str, FakeCollection] = {}
        self._handles: dict[str, FakeCollection] = {}
        self.fail_list_collections: Exception | None = None

    def __getitem__(self, name: str) -> FakeCollection:
        if name in self.collections:
            return self.collections[name]
        if name not in self._handles:
            self._handles[name] = FakeCollection(self, name)
        return self._handles[name]

    def list_collection_names(self) -> list[str]:
        if self.fail_list_collections is not None:
            raise self.fail_list_collections
        return list(self.collections)


class FakeClient:
    def __init__(self, name: str = "fake"):
        self.name = name
        self.databases: dict[str, FakeDatabase] = {}
        self.close_calls = 0
        self.fail_list_databases: Exception | None = None

    def __getitem__(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(self, name)
        return self.databases[name]

    def list_database_names(self) -> list[str]:
        if self.fail_list_databases is not None:
            raise self.fail_list_databases
        return [name for name, db in self.databases.items() if db.collections]

    def close(self) -> None:
        self.close_calls += 1

    def collection(self, database: str, name: str) -> FakeCollection:
        return self[database][name]


class FakeConnectionProvider:
    """Hands out prepared clients, or raises a prepared error, per endpoint label."""

    def __init__(self, **endpoints: Any):
        self._endpoints = endpoints
        self.connected: list[str] = []

    def connect(self, endpoint: EndpointConfig, label: str) -> FakeClient:
        outcome = self._endpoints[label]
        self.connected.append(label)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_run_config(**overrides: Any) -> RunConfig:
    """RunConfig with valid endpoints, for tests that only care about other fields."""
    data: dict[str, Any] = {
        "source": {"host": "source.example", "port": 27017, "database": "app"},
        "target": {"host": "localhost", "port": 27018},
    }
    data.update(overrides)
    return RunConfig(**data)


@pytest.fixture
def client_factory() -> Callable[[str], FakeClient]:
    return FakeClient


@pytest.fixture
def source_client() -> FakeClient:
    return FakeClient("source")


@pytest.fixture
def target_client() -> FakeClient:
    return FakeClient("target")


@pytest.fixture
def provider_factory() -> Callable[..., FakeConnectionProvider]:
    return FakeConnectionProvider


@pytest.fixture
def run_config_factory() -> Callable[..., RunConfig]:
    return make_run_config
