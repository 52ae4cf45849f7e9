"""
Queries and shaping for the portal's live data surfaces.

Each function builds the Query a screen subscribes to, or shapes the
records of its snapshots. Queries are rebuilt from the Session on every
bind so a changed course filter becomes a new subscription.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from .config import PartitionConfig
from .identity.models import Role, Session
from .store.base import ArrayContains, Eq, Gte, OrderBy, Query, Record

_PARTITIONS = PartitionConfig()

NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class PastQuestion:
    """A past question paper as shown to students."""

    id: str
    module: str
    semester: str
    year: str
    file_url: Optional[str]
    kind: str

    @classmethod
    def from_record(cls, record: Record) -> PastQuestion:
        file_url = record.get("userPhotoUrl")
        is_pdf = isinstance(file_url, str) and file_url.lower().endswith(".pdf")
        return cls(
            id=record.id,
            module=record.get("Module") or NOT_AVAILABLE,
            semester=record.get("Semester") or NOT_AVAILABLE,
            year=record.get("academicYear") or NOT_AVAILABLE,
            file_url=file_url,
            kind="pdf" if is_pdf else "image",
        )


def student_past_questions(
    session: Optional[Session],
    partitions: PartitionConfig = _PARTITIONS,
) -> Optional[Query]:
    """Past questions for the session's course.

    CEO sessions carry no course and see every paper. Returns None when
    there is nothing to subscribe to (no session, or a student without a
    course).
    """
    if session is None:
        return None
    if session.role is Role.CEO:
        return Query(partitions.past_questions)
    if session.course is None:
        return None
    return Query(partitions.past_questions, (ArrayContains("Courses", session.course),))


def admin_past_questions(partitions: PartitionConfig = _PARTITIONS) -> Query:
    return Query(partitions.past_questions, order_by=OrderBy("registrationDate", descending=True))


def admin_users(partitions: PartitionConfig = _PARTITIONS) -> Query:
    return Query(partitions.admins, order_by=OrderBy("timestamp", descending=True))


def course_roster(course: str, partitions: PartitionConfig = _PARTITIONS) -> Query:
    return Query(partitions.students, (Eq("course", course),))


def start_of_day(now: datetime) -> datetime:
    """Midnight of `now` in its own time zone.

    A naive `now` is taken as local time and made aware, so the result
    compares with the aware timestamps the store writes.
    """
    if now.tzinfo is None:
        now = now.astimezone()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def todays_logins(
    now: Optional[datetime] = None,
    partitions: PartitionConfig = _PARTITIONS,
) -> Query:
    """Login events since midnight of `now`, latest first.

    `now` defaults to the current local time.
    """
    now = now or datetime.now().astimezone()
    return Query(
        partitions.login_logs,
        (Gte("loggedInAt", start_of_day(now)),),
        order_by=OrderBy("loggedInAt", descending=True),
    )


def split_logins_by_role(records: Iterable[Record]) -> dict[str, list[Record]]:
    """Group login events into students/admins/ceos by their role tag."""
    groups: dict[str, list[Record]] = {"students": [], "admins": [], "ceos": []}
    keys = {"student": "students", "admin": "admins", "ceo": "ceos"}
    for record in records:
        role = record.get("role")
        key = keys.get(role.lower()) if isinstance(role, str) else None
        if key is not None:
            groups[key].append(record)
    return groups


def registration_summary(records: Iterable[Record | Mapping[str, Any]]) -> dict[str, dict[str, int]]:
    """Count registrations by institution, course and level.

    Records missing a field are left out of that field's counts.
    """
    by_institution: Counter[str] = Counter()
    by_course: Counter[str] = Counter()
    by_level: Counter[str] = Counter()

    for record in records:
        fields = record.fields if isinstance(record, Record) else record
        if fields.get("institution"):
            by_institution[fields["institution"]] += 1
        if fields.get("course"):
            by_course[fields["course"]] += 1
        if fields.get("Level"):
            by_level[fields["Level"]] += 1

    return {
        "byInstitution": dict(by_institution),
        "byCourse": dict(by_course),
        "byLevel": dict(by_level),
    }
