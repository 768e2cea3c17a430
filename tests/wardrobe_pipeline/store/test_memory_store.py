"""Tests for the in-memory work item store."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from wardrobe_pipeline.store import (
    Filter,
    InMemoryWorkItemStore,
    any_of,
    eq,
    in_,
    is_null,
    lt,
    lte,
)

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def jobs_store():
    store = InMemoryWorkItemStore()
    store.seed("jobs", {"id": 1, "status": "pending", "next_retry_at": None,
                        "created_at": NOW - timedelta(minutes=3)})
    store.seed("jobs", {"id": 2, "status": "pending", "next_retry_at": NOW + timedelta(minutes=5),
                        "created_at": NOW - timedelta(minutes=2)})
    store.seed("jobs", {"id": 3, "status": "pending", "next_retry_at": NOW - timedelta(seconds=1),
                        "created_at": NOW - timedelta(minutes=1)})
    store.seed("jobs", {"id": 4, "status": "processing", "next_retry_at": None,
                        "created_at": NOW - timedelta(minutes=4)})
    return store


class TestQuery:
    """Tests for query filtering, ordering and limits."""

    @pytest.mark.asyncio
    async def test_due_jobs_filter(self, jobs_store):
        rows = await jobs_store.query(
            "jobs",
            filters=[eq("status", "pending"),
                     any_of(is_null("next_retry_at"), lte("next_retry_at", NOW))],
            order_by="created_at",
        )
        assert [r["id"] for r in rows] == [1, 3]

    @pytest.mark.asyncio
    async def test_order_descending_and_limit(self, jobs_store):
        rows = await jobs_store.query("jobs", order_by="created_at", ascending=False, limit=2)
        assert [r["id"] for r in rows] == [3, 2]

    @pytest.mark.asyncio
    async def test_ordering_comparison_never_matches_null(self, jobs_store):
        rows = await jobs_store.query("jobs", filters=[lt("next_retry_at", NOW + timedelta(days=1))])
        assert sorted(r["id"] for r in rows) == [2, 3]

    @pytest.mark.asyncio
    async def test_in_filter(self, jobs_store):
        rows = await jobs_store.query("jobs", filters=[in_("id", [2, 4])])
        assert sorted(r["id"] for r in rows) == [2, 4]

    @pytest.mark.asyncio
    async def test_unknown_table_is_empty(self, jobs_store):
        assert await jobs_store.query("missing") == []

    def test_invalid_filter_op(self):
        with pytest.raises(ValueError, match="Unsupported filter op"):
            Filter("status", "like", "p%")

    @pytest.mark.asyncio
    async def test_results_are_copies(self, jobs_store):
        rows = await jobs_store.query("jobs", filters=[eq("id", 1)])
        rows[0]["status"] = "mutated"
        assert jobs_store.peek("jobs", 1)["status"] == "pending"


class TestConditionalUpdate:
    """Tests for compare-and-set updates."""

    @pytest.mark.asyncio
    async def test_applies_when_expected_matches(self):
        store = InMemoryWorkItemStore({"items": [{"id": "a", "status": "pending"}]})

        rows = await store.conditional_update(
            "items", "a", {"status": "processing"}, expected={"status": "pending"}
        )

        assert rows == 1
        assert store.peek("items", "a")["status"] == "processing"

    @pytest.mark.asyncio
    async def test_rejects_when_expected_differs(self):
        store = InMemoryWorkItemStore({"items": [{"id": "a", "status": "succeeded"}]})

        rows = await store.conditional_update(
            "items", "a", {"status": "processing"}, expected={"status": "pending"}
        )

        assert rows == 0
        assert store.peek("items", "a")["status"] == "succeeded"

    @pytest.mark.asyncio
    async def test_expected_none_means_null(self):
        store = InMemoryWorkItemStore({"jobs": [{"id": 1, "started_at": None}]})

        assert await store.conditional_update("jobs", 1, {"x": 1}, expected={"started_at": None}) == 1

    @pytest.mark.asyncio
    async def test_datetime_values_are_serialised(self):
        store = InMemoryWorkItemStore({"jobs": [{"id": 1, "started_at": NOW}]})

        rows = await store.conditional_update(
            "jobs", 1, {"completed_at": NOW}, expected={"started_at": NOW}
        )

        assert rows == 1
        assert store.peek("jobs", 1)["completed_at"] == "2026-01-15T12:00:00.000000+00:00"

    @pytest.mark.asyncio
    async def test_missing_row(self):
        store = InMemoryWorkItemStore()
        assert await store.conditional_update("items", "nope", {"status": "x"}) == 0

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self):
        store = InMemoryWorkItemStore({"items": [{"id": "a", "status": "pending"}]})

        outcomes = await asyncio.gather(*(
            store.conditional_update(
                "items", "a", {"status": "processing"}, expected={"status": "pending"}
            )
            for _ in range(10)
        ))

        assert sorted(outcomes) == [0] * 9 + [1]


class TestInsertIfAbsent:
    """Tests for idempotent inserts."""

    @pytest.mark.asyncio
    async def test_second_insert_is_ignored(self):
        store = InMemoryWorkItemStore()
        row = {"item_id": "a", "source_key": "k", "status": "pending"}

        first = await store.insert_if_absent("jobs", row, unique_on=("item_id", "source_key"))
        second = await store.insert_if_absent("jobs", row, unique_on=("item_id", "source_key"))

        assert first is not None and first["id"] is not None
        assert second is None
        assert len(store.rows("jobs")) == 1

    @pytest.mark.asyncio
    async def test_different_key_inserts(self):
        store = InMemoryWorkItemStore()
        await store.insert_if_absent("jobs", {"item_id": "a", "source_key": "k1"},
                                     unique_on=("item_id", "source_key"))
        await store.insert_if_absent("jobs", {"item_id": "a", "source_key": "k2"},
                                     unique_on=("item_id", "source_key"))
        assert len(store.rows("jobs")) == 2
