"""
Unit tests for identity, session and login event types.

Tests cover:
- Role parsing
- Display name normalization
- Identity construction from stored fields
- Session snapshot layout and rebuild
- Login event fields per role
"""

from datetime import datetime, timezone

import pytest

from portal.unifiles_core.identity.models import (
    SESSION_SCHEMA_VERSION,
    AdminIdentity,
    CeoIdentity,
    Credential,
    LoginEvent,
    Role,
    Session,
    StudentIdentity,
    identity_from_fields,
    normalize_display_name,
)

CREATED = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestRole:
    """Tests for Role tags."""

    def test_parse_known_tags(self):
        assert Role.parse("Student") is Role.STUDENT
        assert Role.parse("Admin") is Role.ADMIN
        assert Role.parse("CEO") is Role.CEO

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError, match="Invalid role"):
            Role.parse("Teacher")

    def test_parse_is_case_sensitive(self):
        """Persisted tags are exact."""
        with pytest.raises(ValueError):
            Role.parse("student")


class TestNormalization:
    """Tests for display name normalization."""

    def test_trims_and_casefolds(self):
        assert normalize_display_name("  Jane Doe ") == "jane doe"

    def test_credential_exposes_normalized_name(self):
        cred = Credential("A1B2C3D4", " JANE Doe")
        assert cred.normalized_name == "jane doe"
        assert cred.external_id == "A1B2C3D4"

    def test_whitespace_only_normalizes_to_empty(self):
        assert Credential("A1", "   ").normalized_name == ""


class TestIdentityFromFields:
    """Tests for building identity variants from records."""

    def test_student_carries_profile(self):
        identity = identity_from_fields(
            Role.STUDENT,
            {
                "studentID": "A1B2C3D4",
                "studentName": "jane doe",
                "course": "CompSci",
                "institution": "UniFiles College",
                "userPhotoUrl": "https://cdn/jane.png",
            },
        )

        assert isinstance(identity, StudentIdentity)
        assert identity.course == "CompSci"
        assert identity.institution == "UniFiles College"
        assert identity.photo_ref == "https://cdn/jane.png"
        assert identity.role is Role.STUDENT

    def test_admin_and_ceo_variants(self):
        fields = {"studentID": "X9", "studentName": "ada"}

        assert isinstance(identity_from_fields(Role.ADMIN, fields), AdminIdentity)
        assert isinstance(identity_from_fields(Role.CEO, fields), CeoIdentity)

    def test_missing_id_rejected(self):
        with pytest.raises(ValueError):
            identity_from_fields(Role.STUDENT, {"studentName": "jane doe"})

    def test_student_optional_fields_default_to_none(self):
        identity = identity_from_fields(Role.STUDENT, {"studentID": "S1", "studentName": "sam"})
        assert identity.course is None
        assert identity.institution is None


class TestSession:
    """Tests for Session values and their snapshot."""

    @pytest.fixture
    def student(self):
        return StudentIdentity("A1B2C3D4", "jane doe", course="CompSci", institution="UFC")

    def test_role_must_match_identity(self, student):
        with pytest.raises(ValueError, match="does not match"):
            Session(identity=student, role=Role.ADMIN, created_at=CREATED)

    def test_course_only_for_students(self, student):
        assert Session(student, Role.STUDENT, CREATED).course == "CompSci"
        assert Session(CeoIdentity("C1", "ceo"), Role.CEO, CREATED).course is None

    def test_snapshot_is_flat(self, student):
        data = Session(student, Role.STUDENT, CREATED).to_dict()

        assert data["studentID"] == "A1B2C3D4"
        assert data["studentName"] == "jane doe"
        assert data["course"] == "CompSci"
        assert data["role"] == "Student"
        assert data["createdAt"] == CREATED.isoformat()
        assert data["schemaVersion"] == SESSION_SCHEMA_VERSION

    def test_snapshot_rebuilds_equal_session(self, student):
        session = Session(student, Role.STUDENT, CREATED)
        assert Session.from_dict(session.to_dict()) == session

    def test_foreign_schema_rejected(self, student):
        data = Session(student, Role.STUDENT, CREATED).to_dict()
        data["schemaVersion"] = SESSION_SCHEMA_VERSION + 1

        with pytest.raises(ValueError, match="schema"):
            Session.from_dict(data)

    def test_sessions_are_immutable(self, student):
        session = Session(student, Role.STUDENT, CREATED)
        with pytest.raises(AttributeError):
            session.role = Role.CEO


class TestLoginEvent:
    """Tests for LoginEvent field layout."""

    def test_student_fields_with_placeholders(self):
        event = LoginEvent(Role.STUDENT, StudentIdentity("A1", "jane doe", course="CompSci"))
        fields = event.to_fields()

        assert fields == {
            "role": "Student",
            "studentID": "A1",
            "studentName": "jane doe",
            "institution": "—",
            "course": "CompSci",
        }

    def test_admin_fields(self):
        event = LoginEvent(Role.ADMIN, AdminIdentity("AD1", "ada"))
        assert event.to_fields() == {"role": "Admin", "adminID": "AD1", "adminName": "ada"}

    def test_ceo_fields(self):
        event = LoginEvent(Role.CEO, CeoIdentity("C1", "grace"))
        assert event.to_fields() == {"role": "CEO", "ceoID": "C1", "ceoName": "grace"}
        assert event.identity_ref == "C1"
