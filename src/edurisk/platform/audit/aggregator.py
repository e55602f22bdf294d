"""
Audit trail statistics.

All aggregates are computed in the database over ``[now - window, now]``; the
lower bound is inclusive and events stamped after ``now`` are excluded.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import and_, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import session_scope
from ..settings import settings
from .exceptions import AuditQueryError, store_errors
from .models import AuditEvent, EventStatus, utcnow
from .schemas import (
    ActionActivity,
    ActionCount,
    ActivitySummary,
    AuditStatistics,
    DailyCount,
    RiskCount,
    RoleActivity,
)

logger = structlog.get_logger(__name__)


def _as_date(value: Any) -> date:
    # SQLite returns DATE() as text, PostgreSQL as a date
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class AuditAggregator:
    """Computes windowed statistics over the audit trail."""

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        top_actions_limit: int | None = None,
    ):
        self._session = session
        self._session_factory = session_factory
        self.top_actions_limit = top_actions_limit or settings.audit.top_actions_limit

    def _get_session(self) -> Any:
        return session_scope(self._session, self._session_factory)

    @staticmethod
    def _window(window_days: int | None) -> tuple[int, datetime, datetime]:
        days = settings.audit.stats_window_days if window_days is None else window_days
        if days < 1:
            raise AuditQueryError(f"window_days must be positive, got {days}")
        until = utcnow()
        return days, until - timedelta(days=days), until

    async def statistics(self, window_days: int | None = None) -> AuditStatistics:
        """Totals plus role, action and risk distributions for the window."""
        days, since, until = self._window(window_days)
        in_window = and_(AuditEvent.timestamp >= since, AuditEvent.timestamp <= until)

        with store_errors("statistics"):
            async with self._get_session() as session:
                totals = await session.execute(
                    select(
                        func.count(AuditEvent.id),
                        func.count(AuditEvent.id).filter(AuditEvent.is_suspicious.is_(True)),
                        func.count(AuditEvent.id).filter(
                            AuditEvent.status == EventStatus.FAILED.value
                        ),
                    ).where(in_window)
                )
                total, suspicious, failed = totals.one()

                role_rows = await session.execute(
                    select(
                        AuditEvent.actor_role,
                        func.count(AuditEvent.id),
                        func.count(distinct(AuditEvent.actor_id)),
                    )
                    .where(in_window)
                    .group_by(AuditEvent.actor_role)
                    .order_by(AuditEvent.actor_role)
                )

                action_count = func.count(AuditEvent.id).label("count")
                action_rows = await session.execute(
                    select(AuditEvent.action, action_count)
                    .where(in_window)
                    .group_by(AuditEvent.action)
                    .order_by(action_count.desc(), AuditEvent.action.asc())
                    .limit(self.top_actions_limit)
                )

                risk_rows = await session.execute(
                    select(AuditEvent.risk_level, func.count(AuditEvent.id))
                    .where(in_window)
                    .group_by(AuditEvent.risk_level)
                    .order_by(AuditEvent.risk_level.asc())
                )

                stats = AuditStatistics(
                    window_days=days,
                    since=since,
                    until=until,
                    total_events=total or 0,
                    suspicious_event_count=suspicious or 0,
                    failed_event_count=failed or 0,
                    role_activity=[
                        RoleActivity(role=role, count=count, distinct_actors=actors)
                        for role, count, actors in role_rows.all()
                    ],
                    action_distribution=[
                        ActionCount(action=action, count=count)
                        for action, count in action_rows.all()
                    ],
                    risk_distribution=[
                        RiskCount(risk_level=level, count=count)
                        for level, count in risk_rows.all()
                    ],
                )

        logger.info(
            "audit.statistics.computed",
            window_days=days,
            total_events=stats.total_events,
        )
        return stats

    async def activity_summary(self, window_days: int | None = None) -> ActivitySummary:
        """Per-action totals, distinct actors and a daily breakdown."""
        days, since, until = self._window(window_days)
        in_window = and_(AuditEvent.timestamp >= since, AuditEvent.timestamp <= until)
        day = func.date(AuditEvent.timestamp).label("day")

        with store_errors("activity_summary"):
            async with self._get_session() as session:
                daily_rows = await session.execute(
                    select(AuditEvent.action, day, func.count(AuditEvent.id))
                    .where(in_window)
                    .group_by(AuditEvent.action, day)
                    .order_by(AuditEvent.action, day)
                )
                actor_rows = await session.execute(
                    select(AuditEvent.action, func.count(distinct(AuditEvent.actor_id)))
                    .where(in_window)
                    .group_by(AuditEvent.action)
                )
                daily = daily_rows.all()
                distinct_actors = dict(actor_rows.all())

        per_action: dict[str, list[DailyCount]] = defaultdict(list)
        for action, bucket, count in daily:
            per_action[action].append(DailyCount(date=_as_date(bucket), count=count))

        actions = [
            ActionActivity(
                action=action,
                total_count=sum(entry.count for entry in buckets),
                distinct_actors=distinct_actors.get(action, 0),
                daily_activity=sorted(buckets, key=lambda entry: entry.date),
            )
            for action, buckets in per_action.items()
        ]
        actions.sort(key=lambda item: (-item.total_count, item.action.value))

        return ActivitySummary(window_days=days, since=since, until=until, actions=actions)


__all__ = ["AuditAggregator"]
