"""Tests for index declaration and plan inspection."""

from __future__ import annotations

import pytest
from pymongo import errors as pymongo_errors

from bookstore.db.connection import Connection
from bookstore.db.indexes import ExecutionStats, IndexManager, IndexSpec
from bookstore.errors import InvalidSpecError, StoreError
from bookstore.query.builder import build_query
from bookstore.query.specs import Direction, Page
from tests.fakes import BOOKS, FakeCollection, FakeDatabase


@pytest.fixture
def indexes(connection: Connection) -> IndexManager:
    return IndexManager(connection)


class TestIndexSpec:
    def test_compound_index(self) -> None:
        spec = IndexSpec.of("author", ("published_year", "desc"))

        assert spec.key_document() == [("author", 1), ("published_year", -1)]
        assert spec.index_name() == "author_1_published_year_-1"

    def test_explicit_name(self) -> None:
        spec = IndexSpec.of("title", name="by_title", unique=True)

        assert spec.index_name() == "by_title"
        assert spec.fields == (("title", Direction.ASCENDING),)

    def test_empty_index_is_rejected(self) -> None:
        with pytest.raises(InvalidSpecError, match="at least one field"):
            IndexSpec(())

    def test_duplicate_field_is_rejected(self) -> None:
        with pytest.raises(InvalidSpecError, match="duplicate index field"):
            IndexSpec.of("title", ("title", -1))


class TestEnsureIndex:
    async def test_second_call_is_a_no_op(
        self, indexes: IndexManager, books: FakeCollection
    ) -> None:
        spec = IndexSpec.of("author", "published_year")

        created = await indexes.ensure_index(spec)
        before = await indexes.list_indexes()
        created_again = await indexes.ensure_index(spec)
        after = await indexes.list_indexes()

        assert (created, created_again) == (True, False)
        assert before == after == {
            "_id_": [("_id", 1)],
            "author_1_published_year_1": [("author", 1), ("published_year", 1)],
        }
        assert [name for name, *_ in books.calls].count("create_index") == 1

    async def test_existing_index_under_another_name(
        self, indexes: IndexManager, books: FakeCollection
    ) -> None:
        books.indexes["legacy_title"] = {"key": [("title", 1)], "v": 2}

        assert await indexes.ensure_index(IndexSpec.of("title")) is False

    async def test_key_order_matters(self, indexes: IndexManager) -> None:
        await indexes.ensure_index(IndexSpec.of("author", "published_year"))

        assert await indexes.ensure_index(IndexSpec.of("published_year", "author")) is True

    async def test_unique_mismatch_is_reported(
        self, indexes: IndexManager, books: FakeCollection
    ) -> None:
        await indexes.ensure_index(IndexSpec.of("title"))

        with pytest.raises(StoreError, match="exists with unique=False"):
            await indexes.ensure_index(IndexSpec.of("title", unique=True))

    async def test_unique_option_is_sent(self, indexes: IndexManager, books: FakeCollection) -> None:
        await indexes.ensure_index(IndexSpec.of("title", unique=True))

        assert books.calls[-1] == (
            "create_index",
            ([("title", 1)],),
            {"name": "title_1", "unique": True},
        )

    async def test_store_rejection_is_translated(
        self, indexes: IndexManager, books: FakeCollection
    ) -> None:
        books.errors["create_index"] = pymongo_errors.OperationFailure(
            "Index build failed", code=11000
        )

        with pytest.raises(StoreError) as excinfo:
            await indexes.ensure_index(IndexSpec.of("title", unique=True))

        assert excinfo.value.code == 11000
        assert excinfo.value.operation == "create_index"


class TestExplain:
    async def test_collection_scan_without_index(
        self, indexes: IndexManager, books: FakeCollection, database: FakeDatabase
    ) -> None:
        books.seed(*BOOKS)

        stats = await indexes.explain(build_query({"title": "1984"}))

        assert stats.index_used is False
        assert stats.winning_stage == "COLLSCAN"
        assert stats.returned == 1
        assert stats.docs_examined == 12
        assert database.commands[-1] == {
            "explain": {"find": "books", "filter": {"title": "1984"}},
            "verbosity": "executionStats",
        }

    async def test_index_scan_after_ensure(
        self, indexes: IndexManager, books: FakeCollection
    ) -> None:
        books.seed(*BOOKS)
        await indexes.ensure_index(IndexSpec.of("title"))

        stats = await indexes.explain(build_query({"title": "1984"}))

        assert stats.index_used is True
        assert stats.index_names == ("title_1",)
        assert stats.winning_stage == "FETCH"
        assert stats.keys_examined == 1
        assert stats.docs_examined == 1

    async def test_compare_forces_collection_scan_first(
        self, indexes: IndexManager, books: FakeCollection, database: FakeDatabase
    ) -> None:
        books.seed(*BOOKS)
        await indexes.ensure_index(IndexSpec.of("title"))

        comparison = await indexes.compare(build_query({"title": "1984"}))

        assert comparison.full_scan.index_used is False
        assert comparison.indexed.index_used is True
        assert comparison.docs_saved == 11
        assert database.commands[-2]["explain"]["hint"] == {"$natural": 1}
        assert "hint" not in database.commands[-1]["explain"]
        assert comparison.to_dict()["docs_saved"] == 11

    async def test_query_options_are_forwarded(
        self, indexes: IndexManager, database: FakeDatabase
    ) -> None:
        query = build_query(
            {"genre": "Fiction"},
            projection=["title"],
            sort=["published_year"],
            page=Page.number(2, 5),
        )

        await indexes.explain(query)

        assert database.commands[-1]["explain"] == {
            "find": "books",
            "filter": {"genre": "Fiction"},
            "projection": {"title": 1, "_id": 1},
            "sort": {"published_year": 1, "_id": 1},
            "skip": 5,
            "limit": 5,
        }

    async def test_empty_query_cannot_be_explained(self, indexes: IndexManager) -> None:
        with pytest.raises(InvalidSpecError, match="zero-limit"):
            await indexes.explain(build_query(sort=["title"], page=Page(limit=0)))


class TestExecutionStats:
    def test_slot_based_plan(self) -> None:
        stats = ExecutionStats.from_explain(
            {
                "queryPlanner": {
                    "winningPlan": {
                        "queryPlan": {
                            "stage": "FETCH",
                            "inputStage": {"stage": "IXSCAN", "indexName": "title_1"},
                        },
                        "slotBasedPlan": {"slots": "..."},
                    }
                },
                "executionStats": {
                    "nReturned": 1,
                    "totalKeysExamined": 1,
                    "totalDocsExamined": 1,
                    "executionTimeMillis": 3,
                },
            }
        )

        assert stats.index_used is True
        assert stats.winning_stage == "FETCH"
        assert stats.execution_time_ms == 3

    def test_express_id_lookup(self) -> None:
        stats = ExecutionStats.from_explain(
            {"queryPlanner": {"winningPlan": {"stage": "EXPRESS_IDHACK"}}}
        )

        assert stats.index_used is True
        assert stats.returned == 0

    def test_or_plan_walks_every_branch(self) -> None:
        stats = ExecutionStats.from_explain(
            {
                "queryPlanner": {
                    "winningPlan": {
                        "stage": "SUBPLAN",
                        "inputStage": {
                            "stage": "OR",
                            "inputStages": [
                                {"stage": "IXSCAN", "indexName": "title_1"},
                                {"stage": "IXSCAN", "indexName": "author_1_published_year_1"},
                                {"stage": "IXSCAN", "indexName": "title_1"},
                            ],
                        },
                    }
                }
            }
        )

        assert stats.index_names == ("title_1", "author_1_published_year_1")
        assert stats.winning_stage == "SUBPLAN"
