"""
Tests for the audit recorder write path and its error boundary.
"""

import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from edurisk.platform.audit.models import (
    ActorRole,
    ActorSnapshot,
    AuditAction,
    AuditEvent,
    ComplianceType,
    EventStatus,
    RiskLevel,
)
from edurisk.platform.audit.recorder import AuditRecorder
from edurisk.platform.settings import settings


@pytest.fixture
def recorder(session_factory):
    return AuditRecorder(session_factory=session_factory)


def fake_request(**state):
    return SimpleNamespace(
        client=SimpleNamespace(host="10.0.0.7"),
        headers={
            "user-agent": "pytest-agent",
            "authorization": "Bearer secret-token",
            "x-forwarded-for": "198.51.100.20, 10.0.0.1",
        },
        method="get",
        url="http://testserver/api/v1/students/student-1001",
        state=SimpleNamespace(**state),
    )


async def count_events(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(AuditEvent))


class TestRecord:
    """Test AuditRecorder.record."""

    async def test_record_persists_required_fields(self, recorder, session_factory, teacher):
        event = await recorder.record(teacher, AuditAction.LOGIN, "User logged in successfully")

        assert event is not None
        assert event.id is not None
        assert event.timestamp is not None
        assert event.actor_id == "teacher-42"
        assert event.actor_role == ActorRole.TEACHER
        assert event.action == AuditAction.LOGIN
        assert event.status == EventStatus.SUCCESS
        assert event.risk_level == RiskLevel.LOW
        assert await count_events(session_factory) == 1

    async def test_request_context_extracted(self, recorder, teacher):
        request = fake_request(request_id="req-123")

        event = await recorder.record(teacher, AuditAction.STUDENT_VIEWED, "Viewed", request=request)

        assert event.ip_address == "10.0.0.7"
        assert event.user_agent == "pytest-agent"
        assert event.request_method == "GET"
        assert event.request_url.endswith("/students/student-1001")
        assert event.request_id == "req-123"
        assert event.request_headers["authorization"] == "[REDACTED]"

    async def test_forwarded_for_honoured_when_trusted(self, recorder, teacher, monkeypatch):
        monkeypatch.setattr(settings.audit, "trust_forwarded_for", True)

        event = await recorder.record(teacher, "LOGIN", "Logged in", request=fake_request())

        assert event.ip_address == "198.51.100.20"

    async def test_explicit_fields_override_request(self, recorder, teacher):
        event = await recorder.record(
            teacher, "LOGIN", "Logged in", request=fake_request(), ip_address="192.0.2.1"
        )

        assert event.ip_address == "192.0.2.1"

    async def test_actor_falls_back_to_request_state(self, recorder, counselor):
        request = fake_request(audit_actor=counselor)

        event = await recorder.record(None, AuditAction.SESSION_SCHEDULED, "Scheduled", request=request)

        assert event.actor_id == "counselor-7"

    async def test_missing_actor_returns_none(self, recorder, session_factory):
        assert await recorder.record(None, "LOGIN", "Logged in") is None
        assert await count_events(session_factory) == 0

    async def test_malformed_action_returns_none(self, recorder, session_factory, teacher):
        result = await recorder.record(teacher, "STUDENT_TELEPORTED", "Impossible")

        assert result is None
        assert await count_events(session_factory) == 0

    async def test_malformed_action_with_unreachable_store(self, unreachable_session_factory, teacher):
        recorder = AuditRecorder(session_factory=unreachable_session_factory)

        assert await recorder.record(teacher, "NOT_AN_ACTION", "x") is None

    async def test_unreachable_store_returns_none(self, unreachable_session_factory, teacher):
        recorder = AuditRecorder(session_factory=unreachable_session_factory)

        assert await recorder.record(teacher, AuditAction.LOGIN, "Logged in") is None

    async def test_factory_failure_is_contained(self, teacher):
        def broken_factory():
            raise RuntimeError("pool exhausted")

        recorder = AuditRecorder(session_factory=broken_factory)

        assert await recorder.record(teacher, AuditAction.LOGIN, "Logged in") is None

    async def test_slow_write_times_out(self, recorder, teacher, monkeypatch):
        monkeypatch.setattr(settings.audit, "write_timeout_seconds", 0.05)

        async def slow_persist(data):
            await asyncio.sleep(5)

        monkeypatch.setattr(recorder, "_persist", slow_persist)

        assert await recorder.record(teacher, AuditAction.LOGIN, "Logged in") is None

    async def test_cancellation_propagates(self, recorder, teacher, monkeypatch):
        async def cancelled_persist(data):
            raise asyncio.CancelledError()

        monkeypatch.setattr(recorder, "_persist", cancelled_persist)

        with pytest.raises(asyncio.CancelledError):
            await recorder.record(teacher, AuditAction.LOGIN, "Logged in")

    async def test_disabled_recorder_writes_nothing(self, recorder, session_factory, teacher, monkeypatch):
        monkeypatch.setattr(settings.audit, "enabled", False)

        assert await recorder.record(teacher, AuditAction.LOGIN, "Logged in") is None
        assert await count_events(session_factory) == 0

    async def test_retention_override(self, recorder, teacher):
        event = await recorder.record(teacher, AuditAction.LOGIN, "Logged in", retention_period_days=30)

        assert event.retention_period_days == 30
        assert (event.retention_deadline - event.timestamp).days == 30

    async def test_change_payload_tracks_changed_fields(self, recorder, teacher):
        event = await recorder.record(
            teacher,
            AuditAction.GRADE_UPDATED,
            "Updated grade for student",
            resource_type="Grade",
            resource_id="g-1",
            old_values={"marks_obtained": 41, "subject": "Math"},
            new_values={"marks_obtained": 47, "subject": "Math"},
        )

        assert event.changed_fields == ["marks_obtained"]
        assert event.old_values["marks_obtained"] == 41
        assert event.new_values["marks_obtained"] == 47

    async def test_location_stored(self, recorder, teacher):
        event = await recorder.record(
            teacher,
            AuditAction.LOGIN,
            "Logged in",
            location={
                "country": "IN",
                "city": "Kochi",
                "coordinates": {"latitude": 9.93, "longitude": 76.26},
            },
        )

        assert event.location == {
            "country": "IN",
            "city": "Kochi",
            "coordinates": {"latitude": 9.93, "longitude": 76.26},
        }


def request_with_headers(**headers):
    return SimpleNamespace(
        client=SimpleNamespace(host="10.0.0.7"),
        headers=headers,
        method="POST",
        url="http://testserver/api/v1/auth/login",
        state=SimpleNamespace(),
    )


class TestUntrustedRequestInput:
    """Oversized or odd request data is stored in a bounded form, not dropped."""

    async def test_oversized_user_agent_truncated(self, recorder, session_factory, teacher, student):
        request = request_with_headers(**{"user-agent": "A" * 501})

        event = await recorder.log_student(teacher, AuditAction.STUDENT_EXPORTED, student, request=request)

        assert event is not None
        assert event.user_agent == "A" * 500
        assert await count_events(session_factory) == 1

    async def test_oversized_forwarded_for_truncated(self, recorder, session_factory, monkeypatch):
        monkeypatch.setattr(settings.audit, "trust_forwarded_for", True)
        request = request_with_headers(**{"x-forwarded-for": "x" * 65})

        event = await recorder.log_auth(
            None, AuditAction.LOGIN_FAILED, request, attempted_identifier="asha@school.example"
        )

        assert event is not None
        assert event.ip_address == "x" * 64
        assert event.is_suspicious is True
        assert await count_events(session_factory) == 1

    async def test_blank_ip_becomes_unknown(self, recorder, teacher):
        event = await recorder.record(teacher, AuditAction.LOGIN, "Logged in", ip_address="   ")

        assert event.ip_address == "unknown"

    async def test_unserializable_extra_stored_as_string(self, recorder, session_factory, teacher, student):
        class Reviewer:
            def __str__(self):
                return "Reviewer(counselor-7)"

        event = await recorder.log_student(
            teacher, AuditAction.STUDENT_UPDATED, student, extra={"reviewer": Reviewer()}
        )

        assert event is not None
        assert event.details["reviewer"] == "Reviewer(counselor-7)"
        assert await count_events(session_factory) == 1


class TestBackgroundRecording:
    async def test_record_in_background_and_drain(self, recorder, session_factory, teacher):
        for _ in range(3):
            recorder.record_in_background(teacher, AuditAction.NOTIFICATION_READ, "Read notification")

        await recorder.drain()

        assert recorder.pending == 0
        assert await count_events(session_factory) == 3

    async def test_background_failure_is_swallowed(self, recorder, session_factory, teacher):
        task = recorder.record_in_background(teacher, "BOGUS", "bad")

        await recorder.drain()

        assert task.result() is None
        assert await count_events(session_factory) == 0


class TestDomainWrappers:
    async def test_student_viewed_scenario(self, recorder, teacher, student):
        event = await recorder.log_student(teacher, AuditAction.STUDENT_VIEWED, student)

        assert event is not None
        assert event.status == EventStatus.SUCCESS
        assert event.risk_level == RiskLevel.LOW
        assert event.compliance_type == ComplianceType.FERPA
        assert event.is_compliance_relevant is True
        assert event.related_student_id == "student-1001"

    async def test_failed_login_recorded_as_anonymous(self, recorder):
        request = fake_request()

        event = await recorder.log_auth(
            None, AuditAction.LOGIN_FAILED, request, attempted_identifier="asha@school.example"
        )

        assert event.actor_role == ActorRole.ANONYMOUS
        assert event.actor_email == "asha@school.example"
        assert event.is_suspicious is True
        assert event.status == EventStatus.FAILED
        assert event.ip_address == "10.0.0.7"

    async def test_grade_update_carries_grade_metadata(self, recorder, teacher):
        grade = {"id": "g-1", "student": "student-1001", "subject": "Math", "exam_name": "Midterm"}

        event = await recorder.log_grade(
            teacher, AuditAction.GRADE_UPDATED, grade,
            extra={"reason": "re-evaluation"},
        )

        assert event.details["subject"] == "Math"
        assert event.details["reason"] == "re-evaluation"

    async def test_wrapper_with_bad_domain_object_returns_none(self, recorder, teacher):
        class Exploding:
            def __getattr__(self, name):
                raise RuntimeError("lazy load outside session")

        assert await recorder.log_document(teacher, AuditAction.DOCUMENT_UPLOADED, Exploding()) is None

    async def test_system_event_uses_system_actor(self, recorder):
        event = await recorder.log_system(None, AuditAction.SYSTEM_BACKUP, extra={"size_mb": 120})

        assert event.actor_id == "system"
        assert event.risk_level == RiskLevel.HIGH

    async def test_user_snapshot_from_plain_object(self, recorder):
        admin = SimpleNamespace(id=1, role="admin", first_name="Dana", last_name="Lee", email="dana@school.example")

        event = await recorder.log_user(admin, AuditAction.USER_DEACTIVATED, {"id": 2, "name": "Old Account"})

        assert event.actor_name == "Dana Lee"
        assert event.actor_id == "1"
        assert event.risk_level == RiskLevel.HIGH
