"""
Tests for failed-login and bulk-access anomaly detection.
"""

import pytest

from edurisk.platform.audit.anomaly import AnomalyDetector, check_anomaly_configuration
from edurisk.platform.audit.exceptions import (
    AuditConfigurationError,
    AuditPersistenceError,
    AuditQueryError,
)
from edurisk.platform.audit.models import ActorRole, ActorSnapshot, AuditAction
from edurisk.platform.settings import settings


def failed_logins(event_factory, ip, count, *, hours_ago=1, identifiers=("unknown",)):
    return [
        event_factory(
            actor=ActorSnapshot.anonymous(identifiers[i % len(identifiers)]),
            action=AuditAction.LOGIN_FAILED,
            status="Failed",
            ip_address=ip,
            hours_ago=hours_ago,
        )
        for i in range(count)
    ]


def bulk_reads(event_factory, actor, count, *, action=AuditAction.STUDENT_VIEWED, hours_ago=1):
    return [
        event_factory(
            actor=actor,
            action=action,
            resource_type="Student",
            resource_id=f"student-{i % 37}",
            hours_ago=hours_ago,
        )
        for i in range(count)
    ]


@pytest.fixture
def detector(session_factory):
    return AnomalyDetector(session_factory=session_factory)


class TestFailedLogins:
    async def test_six_failures_from_one_ip_flagged(self, detector, insert_events, event_factory):
        await insert_events(
            failed_logins(
                event_factory, "203.0.113.5", 6,
                identifiers=("asha@school.example", "ravi@school.example"),
            )
        )

        snapshot = await detector.detect_anomalies()

        assert len(snapshot.flagged_ips) == 1
        flagged = snapshot.flagged_ips[0]
        assert flagged.ip_address == "203.0.113.5"
        assert flagged.count == 6
        assert flagged.attempted_identifiers == ["asha@school.example", "ravi@school.example"]

    async def test_threshold_boundary(self, detector, insert_events, event_factory):
        await insert_events(
            failed_logins(event_factory, "198.51.100.1", 5)
            + failed_logins(event_factory, "198.51.100.2", 4)
        )

        snapshot = await detector.detect_anomalies()

        assert [ip.ip_address for ip in snapshot.flagged_ips] == ["198.51.100.1"]

    async def test_failures_outside_window_ignored(self, detector, insert_events, event_factory):
        await insert_events(
            failed_logins(event_factory, "192.0.2.9", 3, hours_ago=1)
            + failed_logins(event_factory, "192.0.2.9", 3, hours_ago=30)
        )

        snapshot = await detector.detect_anomalies()

        assert snapshot.flagged_ips == []

    async def test_threshold_from_settings(self, session_factory, insert_events, event_factory, monkeypatch):
        monkeypatch.setattr(settings.audit, "failed_login_threshold", 3)
        await insert_events(failed_logins(event_factory, "192.0.2.50", 3))

        snapshot = await AnomalyDetector(session_factory=session_factory).detect_anomalies()

        assert snapshot.failed_login_threshold == 3
        assert snapshot.flagged_ips[0].count == 3


class TestBulkAccess:
    @pytest.fixture
    def reader(self):
        return ActorSnapshot(
            id="teacher-99", role=ActorRole.TEACHER, name="Bulk Reader", email="bulk@school.example"
        )

    async def test_threshold_boundary(self, detector, insert_events, event_factory, reader, teacher):
        await insert_events(bulk_reads(event_factory, reader, 100) + bulk_reads(event_factory, teacher, 99))

        snapshot = await detector.detect_anomalies()

        assert [actor.actor_id for actor in snapshot.flagged_actors] == ["teacher-99"]
        flagged = snapshot.flagged_actors[0]
        assert flagged.count == 100
        assert flagged.actor_name == "Bulk Reader"
        assert flagged.actor_role == ActorRole.TEACHER
        assert flagged.distinct_resources == 37

    async def test_downloads_count_towards_bulk_access(self, detector, insert_events, event_factory, reader):
        await insert_events(
            bulk_reads(event_factory, reader, 60)
            + bulk_reads(event_factory, reader, 40, action=AuditAction.DOCUMENT_DOWNLOADED)
        )

        snapshot = await detector.detect_anomalies()

        assert snapshot.flagged_actors[0].count == 100

    async def test_other_actions_ignored(self, detector, insert_events, event_factory, reader):
        await insert_events(bulk_reads(event_factory, reader, 120, action=AuditAction.GRADE_ADDED))

        snapshot = await detector.detect_anomalies()

        assert snapshot.flagged_actors == []
        assert snapshot.has_anomalies is False

    async def test_constructor_overrides(self, session_factory, insert_events, event_factory, reader):
        await insert_events(bulk_reads(event_factory, reader, 10, hours_ago=40))

        detector = AnomalyDetector(
            session_factory=session_factory, window_hours=48, bulk_access_threshold=10
        )
        snapshot = await detector.detect_anomalies()

        assert snapshot.window_hours == 48
        assert snapshot.flagged_actors[0].actor_id == "teacher-99"


class TestDetector:
    async def test_empty_store(self, detector):
        snapshot = await detector.detect_anomalies()

        assert snapshot.flagged_ips == []
        assert snapshot.flagged_actors == []
        assert snapshot.window_hours == settings.audit.anomaly_window_hours

    def test_invalid_bulk_action(self, session_factory):
        with pytest.raises(AuditQueryError):
            AnomalyDetector(session_factory=session_factory, bulk_access_actions=["TELEPORT"])

    async def test_store_failure(self, unreachable_session_factory):
        with pytest.raises(AuditPersistenceError):
            await AnomalyDetector(session_factory=unreachable_session_factory).detect_anomalies()

    def test_misconfigured_bulk_actions_is_configuration_error(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings.audit, "bulk_access_actions", ["STUDENT_VIEWED", "TELEPORT"])

        with pytest.raises(AuditConfigurationError):
            AnomalyDetector(session_factory=session_factory)
        with pytest.raises(AuditConfigurationError):
            check_anomaly_configuration()

    def test_explicit_actions_bypass_configuration(self, session_factory, monkeypatch):
        monkeypatch.setattr(settings.audit, "bulk_access_actions", ["TELEPORT"])

        detector = AnomalyDetector(
            session_factory=session_factory, bulk_access_actions=[AuditAction.REPORT_DOWNLOADED]
        )

        assert detector.bulk_access_actions == ["REPORT_DOWNLOADED"]

    def test_default_configuration_is_valid(self):
        check_anomaly_configuration()
