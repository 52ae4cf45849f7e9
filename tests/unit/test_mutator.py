"""
Unit tests for the record mutator.

Tests cover:
- Results instead of exceptions
- Field replacement semantics and last-write-wins
- Optimistic overlay and rollback through a LiveView
"""

import asyncio

import pytest

from portal.unifiles_core.errors import RecordMissingError, StoreUnavailableError
from portal.unifiles_core.identity import Credential, IdentityResolver, StudentIdentity
from portal.unifiles_core.mutator import RecordMutator
from portal.unifiles_core.store import (
    InMemoryRecordStore,
    Query,
    StoreConnectionError,
    StoreTimeoutError,
)
from portal.unifiles_core.sync import LiveView, SyncEngine

PAPERS = Query("PastQuestions")


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def mutator(store):
    return RecordMutator(store)


class TestResults:
    """Writes report outcomes as values."""

    @pytest.mark.asyncio
    async def test_create(self, store, mutator):
        await store.connect()

        result = await mutator.create("PastQuestions", {"Module": "Algebra"})

        assert result.success
        assert result.error is None
        assert result.record.fields == {"Module": "Algebra"}
        assert len(store.get_all_records("PastQuestions")) == 1

    @pytest.mark.asyncio
    async def test_update_replaces_supplied_fields(self, store, mutator):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra", "Semester": "Semester 1"})

        result = await mutator.update("PastQuestions", rec.id, {"Semester": "Semester 2"})

        assert result.success
        assert result.record.fields == {"Module": "Algebra", "Semester": "Semester 2"}

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store, mutator):
        await store.connect()
        rec = store.seed("AdminUser", {"studentName": "ada"})

        await mutator.update("AdminUser", rec.id, {"studentName": "first"})
        await mutator.update("AdminUser", rec.id, {"studentName": "second"})

        assert store.get_all_records("AdminUser")[0].fields["studentName"] == "second"

    @pytest.mark.asyncio
    async def test_delete(self, store, mutator):
        await store.connect()
        rec = store.seed("Registration", {"studentID": "A1"})

        result = await mutator.delete("Registration", rec.id)

        assert result.success
        assert result.record is None
        assert store.get_all_records("Registration") == []

    @pytest.mark.asyncio
    async def test_missing_record_is_a_value(self, store, mutator):
        await store.connect()

        result = await mutator.update("PastQuestions", "gone", {"Module": "x"})

        assert not result.success
        assert isinstance(result.error, RecordMissingError)
        assert result.error.record_id == "gone"

    @pytest.mark.asyncio
    async def test_store_failure_is_a_value(self, store, mutator):
        await store.connect()
        store.inject_failure(StoreTimeoutError("deadline exceeded"))

        result = await mutator.create("PastQuestions", {"Module": "Algebra"})

        assert not result.success
        assert isinstance(result.error, StoreUnavailableError)
        assert result.error.operation == "create"

    @pytest.mark.asyncio
    async def test_disconnected_store(self, mutator):
        result = await mutator.delete("PastQuestions", "any")

        assert isinstance(result.error, StoreUnavailableError)

    @pytest.mark.asyncio
    async def test_write_reaches_live_subscriptions(self, store, mutator):
        await store.connect()
        engine = SyncEngine(store)
        received = []
        await engine.subscribe(PAPERS, received.append)
        await settle()

        await mutator.create("PastQuestions", {"Module": "Algebra"})
        await settle()

        assert [r.fields["Module"] for r in received[-1].records] == ["Algebra"]


class TestIdentityNames:
    """Display names in identity partitions are stored normalized."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("partition", ["Registration", "AdminUser", "Ceo"])
    async def test_create_normalizes_name(self, store, mutator, partition):
        await store.connect()

        result = await mutator.create(partition, {"studentID": "A1", "studentName": "  Jane Doe "})

        assert result.record.fields["studentName"] == "jane doe"

    @pytest.mark.asyncio
    async def test_update_normalizes_name(self, store, mutator):
        await store.connect()
        rec = store.seed("Registration", {"studentID": "A1", "studentName": "jane doe"})

        await mutator.update("Registration", rec.id, {"studentName": "Jane SMITH"})

        assert store.get_all_records("Registration")[0].fields["studentName"] == "jane smith"

    @pytest.mark.asyncio
    async def test_other_partitions_untouched(self, store, mutator):
        await store.connect()

        result = await mutator.create("PastQuestions", {"studentName": "Jane Doe"})

        assert result.record.fields["studentName"] == "Jane Doe"

    @pytest.mark.asyncio
    async def test_registered_student_can_log_in(self, store, mutator):
        await store.connect()
        await mutator.create(
            "Registration",
            {"studentID": "A1", "studentName": "Jane Doe", "course": "CompSci"},
        )

        identity = await IdentityResolver(store).resolve_or_raise(Credential("A1", "Jane Doe"))

        assert isinstance(identity, StudentIdentity)
        assert identity.course == "CompSci"


class TestOptimistic:
    """Overlay handling when a LiveView is passed."""

    @pytest.fixture
    def engine(self, store):
        return SyncEngine(store)

    @pytest.mark.asyncio
    async def test_update_visible_before_push(self, store, mutator, engine):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra", "Year": "2023"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        result = await mutator.update("PastQuestions", rec.id, {"Module": "Graphs"}, view=view)

        assert result.success
        assert view.get(rec.id).fields == {"Module": "Graphs", "Year": "2023"}

        await settle()
        assert view.pending == 0
        assert view.get(rec.id).fields == {"Module": "Graphs", "Year": "2023"}

    @pytest.mark.asyncio
    async def test_create_then_snapshot_has_single_copy(self, store, mutator, engine):
        await store.connect()
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        await mutator.create("PastQuestions", {"Module": "Algebra"}, view=view)
        assert len(view.records) == 1
        await settle()

        assert len(view.records) == 1
        assert not view.records[0].id.startswith("pending-")

    @pytest.mark.asyncio
    async def test_failed_delete_rolls_back(self, store, mutator, engine):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()
        store.inject_failure(StoreConnectionError("offline"))

        result = await mutator.delete("PastQuestions", rec.id, view=view)

        assert not result.success
        assert [r.id for r in view.records] == [rec.id]
        assert view.pending == 0

    @pytest.mark.asyncio
    async def test_failed_create_rolls_back(self, store, mutator, engine):
        await store.connect()
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()
        store.inject_failure(StoreConnectionError("offline"))

        await mutator.create("PastQuestions", {"Module": "Algebra"}, view=view)

        assert view.records == []
