"""Property-based tests for full-copy synchronization.

Covers copying a single collection, whole databases and whole instances
against the in-memory store from conftest.
"""

import math

import pytest
import structlog
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from bson.errors import InvalidBSON, InvalidDocument
from pymongo.errors import OperationFailure

from src.models.filter import PredicateFilter
from src.sync.collection_syncer import CollectionSyncer
from src.sync.database_syncer import DatabaseSyncer
from src.sync.instance_syncer import InstanceSyncer

log = structlog.stdlib.get_logger()


def _docs(count: int, **fields) -> list[dict]:
    return [{"_id": i, "n": i, **fields} for i in range(count)]


class TestCollectionCopy:
    """Copy of one collection with the plain full-copy strategy."""

    @given(
        document_count=st.integers(min_value=0, max_value=40),
        batch_size=st.integers(min_value=1, max_value=20),
    )
    @settings(
        max_examples=50, suppress_health_check=[HealthCheck.function_scoped_fixture], deadline=None
    )
    def test_result_is_independent_of_batch_size(self, client_factory, document_count, batch_size):
        """For any batch size the target ends up with exactly the source documents.

        Writes happen once per page, so the number of insert calls is the
        document count divided by the batch size, rounded up.
        """
        log.info(
            "test_result_is_independent_of_batch_size",
            document_count=document_count,
            batch_size=batch_size,
        )
        source, target = client_factory("source"), client_factory("target")
        if document_count:
            source["shop"]["items"].seed(_docs(document_count))

        result = CollectionSyncer(batch_size=batch_size).sync(source["shop"], target["shop"], "items")

        assert result.success
        assert result.count == document_count
        target_items = target["shop"]["items"]
        assert target_items.documents == source["shop"]["items"].documents
        assert target_items.insert_calls == math.ceil(document_count / batch_size)

    def test_empty_collection_is_skipped(self, source_client, target_client):
        source_client["shop"]["empty"].seed([])

        result = CollectionSyncer(reset_target=True).sync(
            source_client["shop"], target_client["shop"], "empty"
        )

        assert result.success
        assert result.count == 0
        assert target_client["shop"]["empty"].drop_calls == 0
        assert target_client["shop"]["empty"].insert_calls == 0

    def test_reset_target_makes_reruns_idempotent(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(5))
        syncer = CollectionSyncer(batch_size=2, reset_target=True)

        first = syncer.sync(source_client["shop"], target_client["shop"], "users")
        second = syncer.sync(source_client["shop"], target_client["shop"], "users")

        assert first.count == second.count == 5
        assert second.success
        assert target_client["shop"]["users"].documents == source_client["shop"]["users"].documents

    def test_reset_on_missing_target_collection_is_not_an_error(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(2))

        result = CollectionSyncer(reset_target=True).sync(
            source_client["shop"], target_client["shop"], "users"
        )

        assert result.success
        assert target_client["shop"]["users"].drop_calls == 1

    def test_rerun_without_reset_reports_rejected_documents(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(4))
        syncer = CollectionSyncer(batch_size=3)
        syncer.sync(source_client["shop"], target_client["shop"], "users")

        result = syncer.sync(source_client["shop"], target_client["shop"], "users")

        assert not result.success
        assert result.count == 0
        assert result.error == "4 of 4 documents were rejected by the target"

    def test_partial_rejection_keeps_accepted_documents(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(6))
        target_client["shop"]["users"].seed([{"_id": 1, "n": "old"}, {"_id": 4, "n": "old"}])

        result = CollectionSyncer(batch_size=4).sync(
            source_client["shop"], target_client["shop"], "users"
        )

        assert not result.success
        assert result.count == 4
        assert "2 of 6" in result.error
        assert target_client["shop"]["users"].documents[1]["n"] == "old"
        assert set(target_client["shop"]["users"].documents) == set(range(6))

    def test_predicate_restricts_copied_documents(self, source_client, target_client):
        source_client["shop"]["users"].seed(
            _docs(3, status="active") + [{"_id": 10 + i, "status": "inactive"} for i in range(4)]
        )
        predicate = PredicateFilter(conditions={"status": "active"})

        result = CollectionSyncer(predicate=predicate).sync(
            source_client["shop"], target_client["shop"], "users"
        )

        assert result.count == 3
        copied = target_client["shop"]["users"].documents.values()
        assert all(doc["status"] == "active" for doc in copied)

    def test_dry_run_counts_without_writing(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(7))
        target_client["shop"]["users"].seed([{"_id": 99}])

        result = CollectionSyncer(batch_size=3, reset_target=True, dry_run=True).sync(
            source_client["shop"], target_client["shop"], "users"
        )

        assert result.success
        assert result.count == 7
        target_users = target_client["shop"]["users"]
        assert target_users.drop_calls == 0
        assert target_users.insert_calls == 0
        assert list(target_users.documents) == [99]

    def test_count_failure_is_reported_not_raised(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(2))
        source_client["shop"]["users"].fail_count = OperationFailure("not authorized", code=13)

        result = CollectionSyncer().sync(source_client["shop"], target_client["shop"], "users")

        assert not result.success
        assert result.count == 0
        assert result.error.startswith("Failed to count documents")

    def test_cursor_failure_mid_copy_is_reported(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(5))
        source_client["shop"]["users"].fail_find_after = 3

        result = CollectionSyncer(batch_size=2).sync(
            source_client["shop"], target_client["shop"], "users"
        )

        assert not result.success
        assert result.count == 0
        assert result.error.startswith("Failed to copy documents")

    def test_undecodable_source_document_is_reported(self, source_client, target_client):
        users = source_client["shop"]["users"]
        users.seed(_docs(4))
        users.fail_find_after = 2
        users.fail_find_error = InvalidBSON("invalid utf-8 in document")

        result = CollectionSyncer(batch_size=2).sync(
            source_client["shop"], target_client["shop"], "users"
        )

        assert not result.success
        assert result.error.startswith("Failed to copy documents")
        assert "invalid utf-8" in result.error

    def test_unencodable_page_is_reported(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(2))
        target_client["shop"]["users"].fail_insert = InvalidDocument("cannot encode object")

        result = CollectionSyncer().sync(source_client["shop"], target_client["shop"], "users")

        assert not result.success
        assert result.error.startswith("Failed to copy documents")

    def test_write_concern_failure_becomes_warning(self, source_client, target_client):
        source_client["shop"]["users"].seed(_docs(3))
        target_client["shop"]["users"].write_concern_error = {
            "code": 64,
            "errmsg": "waiting for replication timed out",
        }

        result = CollectionSyncer().sync(source_client["shop"], target_client["shop"], "users")

        assert result.success
        assert result.count == 3
        assert result.warnings == [
            "Write concern not satisfied for 3 documents: waiting for replication timed out"
        ]

    def test_indexes_follow_the_documents(self, source_client, target_client):
        users = source_client["shop"]["users"]
        users.seed(_docs(2))
        users.create_index([("email", 1)], name="email_1", unique=True)

        result = CollectionSyncer().sync(source_client["shop"], target_client["shop"], "users")

        assert result.success
        assert result.warnings == []
        assert target_client["shop"]["users"].indexes["email_1"]["unique"] is True

    def test_rejects_non_positive_batch_size(self):
        with pytest.raises(ValueError):
            CollectionSyncer(batch_size=0)


class TestDatabaseSync:
    """Sequential copy of every resolved collection of a database."""

    def test_users_and_orders_scenario(self, source_client, target_client):
        """Two collections of 3 and 5 documents copy in pages of 2 to a total of 8."""
        source_client["app"]["users"].seed(_docs(3))
        source_client["app"]["orders"].seed(_docs(5))
        syncer = DatabaseSyncer(CollectionSyncer(batch_size=2))

        result = syncer.sync_database(source_client, target_client, "app")

        assert result.success
        assert result.total_count == 8
        counts = {r.collection: r.count for r in result.collections}
        assert counts == {"users": 3, "orders": 5}
        assert len(target_client["app"]["orders"].documents) == 5

    def test_system_collections_are_never_copied(self, source_client, target_client):
        source_client["app"]["users"].seed(_docs(1))
        source_client["app"]["system.profile"].seed(_docs(1))
        syncer = DatabaseSyncer(CollectionSyncer(), collections=["system.views", "users"])

        result = syncer.sync_database(source_client, target_client, "app")

        assert [r.collection for r in result.collections] == ["users"]
        assert "system.profile" not in target_client["app"].collections

    def test_explicit_list_order_and_exclusions(self, source_client, target_client):
        for name in ("a", "b", "c"):
            source_client["app"][name].seed(_docs(1))
        syncer = DatabaseSyncer(
            CollectionSyncer(), collections=["c", "a", "b"], exclude_collections=["a"]
        )

        result = syncer.sync_database(source_client, target_client, "app")

        assert [r.collection for r in result.collections] == ["c", "b"]

    def test_one_failing_collection_does_not_stop_the_rest(self, source_client, target_client):
        source_client["app"]["good"].seed(_docs(2))
        source_client["app"]["bad"].seed(_docs(2))
        source_client["app"]["bad"].fail_count = OperationFailure("boom", code=2)
        source_client["app"]["later"].seed(_docs(3))

        result = DatabaseSyncer(CollectionSyncer()).sync_database(source_client, target_client, "app")

        assert not result.success
        assert result.success_count == 2
        assert result.fail_count == 1
        assert result.total_count == 5
        assert [f.collection for f in result.failures()] == ["bad"]

    def test_undecodable_collection_does_not_stop_the_rest(self, source_client, target_client):
        source_client["app"]["bad"].seed(_docs(2))
        source_client["app"]["bad"].fail_find_after = 1
        source_client["app"]["bad"].fail_find_error = InvalidBSON("invalid utf-8 in document")
        source_client["app"]["good"].seed(_docs(3))

        result = DatabaseSyncer(CollectionSyncer()).sync_database(source_client, target_client, "app")

        assert result.success_count == 1
        assert result.fail_count == 1
        assert [f.collection for f in result.failures()] == ["bad"]
        assert len(target_client["app"]["good"].documents) == 3

    def test_listing_failure_becomes_database_error(self, source_client, target_client):
        source_client["app"].fail_list_collections = OperationFailure("not authorized", code=13)

        result = DatabaseSyncer(CollectionSyncer()).sync_database(source_client, target_client, "app")

        assert not result.success
        assert result.collections == []
        assert result.error.startswith("Failed to list collections")

    def test_empty_database_succeeds(self, source_client, target_client):
        result = DatabaseSyncer(CollectionSyncer()).sync_database(source_client, target_client, "void")

        assert result.success
        assert result.total_count == 0

    def test_target_database_name_can_differ(self, source_client, target_client):
        source_client["app"]["users"].seed(_docs(2))

        DatabaseSyncer(CollectionSyncer()).sync_database(
            source_client, target_client, "app", target_name="app_copy"
        )

        assert len(target_client["app_copy"]["users"].documents) == 2
        assert "app" not in target_client.list_database_names()

    def test_several_databases_keep_their_names(self, source_client, target_client):
        source_client["one"]["x"].seed(_docs(1))
        source_client["two"]["y"].seed(_docs(2))

        result = DatabaseSyncer(CollectionSyncer()).sync_databases(
            source_client, target_client, ["one", "two"]
        )

        assert result.success
        assert result.total_databases == 2
        assert result.total_count == 3
        assert sorted(target_client.list_database_names()) == ["one", "two"]


class TestInstanceSync:
    """Copy of every user database on an instance."""

    def test_system_and_excluded_databases_are_skipped(self, source_client, target_client):
        for name in ("admin", "local", "config", "app", "reports", "scratch"):
            source_client[name]["things"].seed(_docs(1))
        syncer = InstanceSyncer(DatabaseSyncer(CollectionSyncer()), exclude_databases=["scratch"])

        result = syncer.sync_instance(source_client, target_client)

        assert result.success
        assert [d.database for d in result.databases] == ["app", "reports"]
        assert sorted(target_client.list_database_names()) == ["app", "reports"]

    def test_failed_database_is_counted(self, source_client, target_client):
        source_client["app"]["things"].seed(_docs(1))
        source_client["broken"]["things"].seed(_docs(1))
        source_client["broken"].fail_list_collections = OperationFailure("denied", code=13)

        result = InstanceSyncer(DatabaseSyncer(CollectionSyncer())).sync_instance(
            source_client, target_client
        )

        assert not result.success
        assert result.success_count == 1
        assert result.fail_count == 1

    def test_listing_failure_becomes_run_error(self, source_client, target_client):
        source_client.fail_list_databases = OperationFailure("denied", code=13)

        result = InstanceSyncer(DatabaseSyncer(CollectionSyncer())).sync_instance(
            source_client, target_client
        )

        assert not result.success
        assert result.databases == []
        assert result.error.startswith("Failed to list databases")

    def test_instance_without_user_databases_succeeds(self, source_client, target_client):
        source_client["admin"]["system.users"].seed(_docs(1))

        result = InstanceSyncer(DatabaseSyncer(CollectionSyncer())).sync_instance(
            source_client, target_client
        )

        assert result.success
        assert result.total_databases == 0
