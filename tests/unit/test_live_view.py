"""
Unit tests for LiveView reconciliation.

Tests cover:
- Snapshot plus overlay merge
- Overlay cleared by a newer snapshot
- Rollback
- Binding to a Session
"""

import asyncio
from datetime import datetime, timezone

import pytest

from portal.unifiles_core.identity import CeoIdentity, Role, Session, StudentIdentity
from portal.unifiles_core.store import InMemoryRecordStore, Query, Record
from portal.unifiles_core.sync import LiveView, SubscriptionState, SyncEngine
from portal.unifiles_core.views import student_past_questions

CREATED = datetime(2024, 3, 1, tzinfo=timezone.utc)
PAPERS = Query("PastQuestions")


async def settle():
    for _ in range(3):
        await asyncio.sleep(0)


def student_session(course):
    return Session(StudentIdentity("S1", "sam", course=course), Role.STUDENT, CREATED)


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def engine(store):
    return SyncEngine(store)


class TestOverlay:
    """Optimistic writes layered over the authoritative snapshot."""

    @pytest.mark.asyncio
    async def test_records_follow_snapshots(self, store, engine):
        await store.connect()
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        await store.create("PastQuestions", {"Module": "Algebra"})
        await settle()

        assert view.loaded
        assert [r.fields["Module"] for r in view.records] == ["Algebra"]
        assert view.version == store.version

    @pytest.mark.asyncio
    async def test_optimistic_upsert_and_delete(self, store, engine):
        await store.connect()
        keep = store.seed("PastQuestions", {"Module": "Algebra"})
        drop = store.seed("PastQuestions", {"Module": "Poetry"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        view.apply_optimistic(keep.id, Record(keep.id, {"Module": "Linear Algebra"}, "PastQuestions"))
        view.apply_optimistic(drop.id, None)
        view.apply_optimistic("pending-1", Record("pending-1", {"Module": "Graphs"}, "PastQuestions"))

        assert [r.fields["Module"] for r in view.records] == ["Linear Algebra", "Graphs"]
        assert view.pending == 3

    @pytest.mark.asyncio
    async def test_cached_records_not_mutated(self, store, engine):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()
        original = view.records[0]

        view.apply_optimistic(rec.id, Record(rec.id, {"Module": "Changed"}, "PastQuestions"))

        assert original.fields["Module"] == "Algebra"

    @pytest.mark.asyncio
    async def test_newer_snapshot_clears_overlay(self, store, engine):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        view.apply_optimistic(rec.id, Record(rec.id, {"Module": "Optimistic"}, "PastQuestions"))
        await store.update("PastQuestions", rec.id, {"Module": "Confirmed"})
        await settle()

        assert view.pending == 0
        assert view.records[0].fields["Module"] == "Confirmed"

    @pytest.mark.asyncio
    async def test_stale_snapshot_keeps_overlay(self, store, engine):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        view.apply_optimistic(rec.id, None)
        store.inject_snapshot(PAPERS, [rec], version=view.version)
        await settle()

        assert view.records == []

    @pytest.mark.asyncio
    async def test_rollback(self, store, engine):
        await store.connect()
        rec = store.seed("PastQuestions", {"Module": "Algebra"})
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        entry = view.apply_optimistic(rec.id, None)
        view.rollback(entry)

        assert [r.id for r in view.records] == [rec.id]

    @pytest.mark.asyncio
    async def test_on_change_called(self, store, engine):
        await store.connect()
        changes = []
        view = LiveView(engine, on_change=lambda v: changes.append(len(v.records)))
        await view.open(PAPERS)
        await settle()

        view.apply_optimistic("pending-1", Record("pending-1", {}, "PastQuestions"))

        assert changes == [0, 1]


class TestBind:
    """Session-driven query selection."""

    @pytest.mark.asyncio
    async def test_bind_filters_by_course(self, store, engine):
        await store.connect()
        store.seed("PastQuestions", {"Module": "Algebra", "Courses": ["CompSci", "Math"]})
        store.seed("PastQuestions", {"Module": "Poetry", "Courses": ["English"]})
        view = LiveView(engine, student_past_questions)

        await view.bind(student_session("CompSci"))
        await settle()

        assert [r.fields["Module"] for r in view.records] == ["Algebra"]

    @pytest.mark.asyncio
    async def test_same_session_keeps_handle(self, store, engine):
        await store.connect()
        view = LiveView(engine, student_past_questions)

        await view.bind(student_session("CompSci"))
        handle = view.handle
        await view.bind(student_session("CompSci"))

        assert view.handle is handle

    @pytest.mark.asyncio
    async def test_course_change_resubscribes(self, store, engine):
        await store.connect()
        store.seed("PastQuestions", {"Module": "Poetry", "Courses": ["English"]})
        view = LiveView(engine, student_past_questions)
        await view.bind(student_session("CompSci"))
        old = view.handle
        await settle()

        await view.bind(student_session("English"))
        await settle()

        assert view.handle is not old
        assert old.state is SubscriptionState.CLOSED
        assert [r.fields["Module"] for r in view.records] == ["Poetry"]

    @pytest.mark.asyncio
    async def test_ceo_sees_all(self, store, engine):
        await store.connect()
        store.seed("PastQuestions", {"Module": "Algebra", "Courses": ["CompSci"]})
        store.seed("PastQuestions", {"Module": "Poetry", "Courses": ["English"]})
        view = LiveView(engine, student_past_questions)

        await view.bind(Session(CeoIdentity("C1", "grace"), Role.CEO, CREATED))
        await settle()

        assert len(view.records) == 2

    @pytest.mark.asyncio
    async def test_logout_closes_view(self, store, engine):
        await store.connect()
        view = LiveView(engine, student_past_questions)
        await view.bind(student_session("CompSci"))

        await view.bind(None)

        assert view.handle is None
        assert view.state is SubscriptionState.UNSUBSCRIBED
        assert view.records == []

    @pytest.mark.asyncio
    async def test_transport_failure_surfaces_on_view(self, store, engine):
        await store.connect()
        view = LiveView(engine)
        await view.open(PAPERS)
        await settle()

        store.fail_subscriptions("PastQuestions")
        await settle()

        assert view.error is not None
        assert view.state is SubscriptionState.UNSUBSCRIBED
