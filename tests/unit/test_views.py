"""
Unit tests for screen queries and record shaping.
"""

from datetime import datetime, timedelta, timezone

import pytest

from portal.unifiles_core.identity import AdminIdentity, CeoIdentity, Role, Session, StudentIdentity
from portal.unifiles_core.store import (
    ArrayContains,
    Eq,
    InMemoryRecordStore,
    OrderBy,
    Record,
)
from portal.unifiles_core.views import (
    PastQuestion,
    admin_past_questions,
    admin_users,
    course_roster,
    registration_summary,
    split_logins_by_role,
    start_of_day,
    student_past_questions,
    todays_logins,
)

CREATED = datetime(2024, 3, 1, tzinfo=timezone.utc)


def record(fields, record_id="r1", partition="PastQuestions"):
    return Record(id=record_id, fields=fields, partition=partition)


class TestPastQuestion:
    """Tests for PastQuestion shaping."""

    def test_defaults_to_not_available(self):
        pq = PastQuestion.from_record(record({}))

        assert (pq.module, pq.semester, pq.year) == ("N/A", "N/A", "N/A")
        assert pq.file_url is None
        assert pq.kind == "image"

    def test_pdf_detected_case_insensitively(self):
        pq = PastQuestion.from_record(
            record({"Module": "Algebra", "Semester": "Semester 1", "academicYear": "2023/2024",
                    "userPhotoUrl": "https://cdn/paper.PDF"})
        )

        assert pq.kind == "pdf"
        assert pq.module == "Algebra"
        assert pq.year == "2023/2024"

    def test_image(self):
        assert PastQuestion.from_record(record({"userPhotoUrl": "https://cdn/p.jpg"})).kind == "image"


class TestQueries:
    """Tests for the query builders."""

    def test_student_filtered_by_course(self):
        session = Session(StudentIdentity("S1", "sam", course="CompSci"), Role.STUDENT, CREATED)

        query = student_past_questions(session)

        assert query.partition == "PastQuestions"
        assert query.predicates == (ArrayContains("Courses", "CompSci"),)

    def test_student_without_course_has_no_query(self):
        session = Session(StudentIdentity("S1", "sam"), Role.STUDENT, CREATED)
        assert student_past_questions(session) is None

    def test_ceo_unfiltered(self):
        session = Session(CeoIdentity("C1", "grace"), Role.CEO, CREATED)
        assert student_past_questions(session).predicates == ()

    def test_no_session(self):
        assert student_past_questions(None) is None

    def test_admin_sees_no_student_feed(self):
        session = Session(AdminIdentity("AD1", "ada"), Role.ADMIN, CREATED)
        assert student_past_questions(session) is None

    def test_admin_lists_ordered(self):
        assert admin_past_questions().order_by == OrderBy("registrationDate", descending=True)
        assert admin_users().partition == "AdminUser"
        assert admin_users().order_by == OrderBy("timestamp", descending=True)

    def test_course_roster(self):
        query = course_roster("CompSci")
        assert query.partition == "Registration"
        assert query.predicates == (Eq("course", "CompSci"),)


class TestTodaysLogins:
    """Tests for the login log views."""

    def test_start_of_day(self):
        now = datetime(2024, 5, 6, 15, 42, 7, 123, tzinfo=timezone.utc)
        assert start_of_day(now) == datetime(2024, 5, 6, tzinfo=timezone.utc)

    def test_start_of_day_naive_is_local_and_aware(self):
        now = datetime(2024, 5, 6, 15, 42)

        start = start_of_day(now)

        assert start.tzinfo is not None
        assert start.replace(tzinfo=None) == datetime(2024, 5, 6)
        assert start.utcoffset() == now.astimezone().utcoffset()

    @pytest.mark.asyncio
    async def test_naive_now_matches_stored_logins(self):
        now = datetime(2024, 5, 6, 15, 0)
        store = InMemoryRecordStore()
        await store.connect()
        store.seed("LoginLogs", {"role": "Admin", "loggedInAt": now.astimezone()})

        records = await store.get(todays_logins(now))

        assert [r.fields["role"] for r in records] == ["Admin"]

    @pytest.mark.asyncio
    async def test_only_today_latest_first(self):
        now = datetime(2024, 5, 6, 15, 0, tzinfo=timezone.utc)
        store = InMemoryRecordStore()
        await store.connect()
        store.seed("LoginLogs", {"role": "Student", "loggedInAt": now - timedelta(days=1)})
        store.seed("LoginLogs", {"role": "Admin", "loggedInAt": now - timedelta(hours=2)})
        store.seed("LoginLogs", {"role": "CEO", "loggedInAt": now - timedelta(minutes=5)})

        records = await store.get(todays_logins(now))

        assert [r.fields["role"] for r in records] == ["CEO", "Admin"]

    def test_split_by_role_case_insensitive(self):
        logs = [
            record({"role": "Student"}, "1", "LoginLogs"),
            record({"role": "admin"}, "2", "LoginLogs"),
            record({"role": "CEO"}, "3", "LoginLogs"),
            record({"role": "student"}, "4", "LoginLogs"),
            record({}, "5", "LoginLogs"),
        ]

        groups = split_logins_by_role(logs)

        assert [r.id for r in groups["students"]] == ["1", "4"]
        assert [r.id for r in groups["admins"]] == ["2"]
        assert [r.id for r in groups["ceos"]] == ["3"]


class TestRegistrationSummary:
    """Tests for registration_summary()."""

    def test_counts(self):
        rows = [
            {"institution": "UFC", "course": "CompSci", "Level": "100"},
            {"institution": "UFC", "course": "Math", "Level": "100"},
            record({"institution": "Poly", "course": "CompSci"}, partition="Registration"),
            {"course": ""},
        ]

        summary = registration_summary(rows)

        assert summary == {
            "byInstitution": {"UFC": 2, "Poly": 1},
            "byCourse": {"CompSci": 2, "Math": 1},
            "byLevel": {"100": 2},
        }

    def test_empty(self):
        assert registration_summary([]) == {"byInstitution": {}, "byCourse": {}, "byLevel": {}}
