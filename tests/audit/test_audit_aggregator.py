"""
Tests for windowed audit statistics.
"""

from datetime import timedelta

import pytest

from edurisk.platform.audit.aggregator import AuditAggregator
from edurisk.platform.audit.exceptions import AuditPersistenceError, AuditQueryError
from edurisk.platform.audit.models import ActorRole, ActorSnapshot, AuditAction, RiskLevel
from edurisk.platform.audit.query import AuditQueryService


@pytest.fixture
def aggregator(session_factory):
    return AuditAggregator(session_factory=session_factory)


@pytest.fixture
async def windowed_events(insert_events, event_factory, teacher, counselor):
    second_teacher = ActorSnapshot(
        id="teacher-43", role=ActorRole.TEACHER, name="Lina Roy", email="lina@school.example"
    )
    events = [
        # Inside the 30-day window
        event_factory(actor=teacher, action=AuditAction.STUDENT_VIEWED, hours_ago=1),
        event_factory(actor=teacher, action=AuditAction.STUDENT_VIEWED, hours_ago=2),
        event_factory(actor=teacher, action=AuditAction.STUDENT_VIEWED, hours_ago=26),
        event_factory(actor=second_teacher, action=AuditAction.GRADE_ADDED, hours_ago=3),
        event_factory(actor=second_teacher, action=AuditAction.GRADE_ADDED, hours_ago=50),
        event_factory(actor=counselor, action=AuditAction.ATTENDANCE_MARKED, hours_ago=4),
        event_factory(actor=counselor, action=AuditAction.ATTENDANCE_MARKED, hours_ago=5),
        event_factory(
            actor=counselor,
            action=AuditAction.INTERVENTION_CREATED,
            risk_level=RiskLevel.HIGH,
            is_suspicious=True,
            hours_ago=6,
        ),
        event_factory(actor=teacher, action=AuditAction.LOGIN_FAILED, status="Failed",
                      risk_level=RiskLevel.MEDIUM, hours_ago=7),
        # Outside the window
        event_factory(actor=teacher, action=AuditAction.STUDENT_VIEWED, hours_ago=24 * 40),
        # In the future
        event_factory(actor=teacher, action=AuditAction.STUDENT_VIEWED, hours_ago=-24),
    ]
    return await insert_events(events)


class TestStatistics:
    async def test_totals(self, aggregator, windowed_events):
        stats = await aggregator.statistics()

        assert stats.window_days == 30
        assert stats.total_events == 9
        assert stats.suspicious_event_count == 1
        assert stats.failed_event_count == 1

    async def test_total_matches_windowed_query(self, aggregator, session_factory, windowed_events):
        stats = await aggregator.statistics(30)

        page = await AuditQueryService(session_factory=session_factory).query_events(
            {"start_date": stats.since, "end_date": stats.until}
        )
        assert page.total == stats.total_events

    async def test_role_activity(self, aggregator, windowed_events):
        stats = await aggregator.statistics()

        roles = {entry.role: entry for entry in stats.role_activity}
        assert roles[ActorRole.TEACHER].count == 6
        assert roles[ActorRole.TEACHER].distinct_actors == 2
        assert roles[ActorRole.COUNSELOR].count == 3
        assert roles[ActorRole.COUNSELOR].distinct_actors == 1

    async def test_action_distribution_order(self, aggregator, windowed_events):
        stats = await aggregator.statistics()

        ranked = [(entry.action, entry.count) for entry in stats.action_distribution]
        assert ranked[0] == (AuditAction.STUDENT_VIEWED, 3)
        # Ties broken by action code
        assert ranked[1:3] == [(AuditAction.ATTENDANCE_MARKED, 2), (AuditAction.GRADE_ADDED, 2)]

    async def test_action_distribution_limit(self, session_factory, windowed_events):
        stats = await AuditAggregator(session_factory=session_factory, top_actions_limit=2).statistics()

        assert len(stats.action_distribution) == 2

    async def test_risk_distribution_sorted_by_level_name(self, aggregator, windowed_events):
        stats = await aggregator.statistics()

        levels = [entry.risk_level.value for entry in stats.risk_distribution]
        assert levels == sorted(levels)
        assert sum(entry.count for entry in stats.risk_distribution) == stats.total_events

    async def test_empty_store(self, aggregator):
        stats = await aggregator.statistics()

        assert stats.total_events == 0
        assert stats.role_activity == []
        assert stats.action_distribution == []

    async def test_invalid_window(self, aggregator):
        with pytest.raises(AuditQueryError):
            await aggregator.statistics(0)

    async def test_store_failure(self, unreachable_session_factory):
        with pytest.raises(AuditPersistenceError):
            await AuditAggregator(session_factory=unreachable_session_factory).statistics()


class TestActivitySummary:
    async def test_per_action_rollup(self, aggregator, windowed_events):
        summary = await aggregator.activity_summary()

        by_action = {item.action: item for item in summary.actions}
        viewed = by_action[AuditAction.STUDENT_VIEWED]
        assert viewed.total_count == 3
        assert viewed.distinct_actors == 1
        assert sum(day.count for day in viewed.daily_activity) == 3
        assert [d.date for d in viewed.daily_activity] == sorted(d.date for d in viewed.daily_activity)

    async def test_sorted_by_total(self, aggregator, windowed_events):
        summary = await aggregator.activity_summary()

        totals = [item.total_count for item in summary.actions]
        assert totals == sorted(totals, reverse=True)
        assert sum(totals) == 9

    async def test_daily_buckets_span_days(self, aggregator, windowed_events):
        summary = await aggregator.activity_summary()

        grades = next(item for item in summary.actions if item.action == AuditAction.GRADE_ADDED)
        assert len(grades.daily_activity) == 2
        assert grades.daily_activity[1].date - grades.daily_activity[0].date >= timedelta(days=1)
