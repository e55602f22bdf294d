"""
Threshold-based anomaly detection over recent audit events.

Two heuristics run over the configured window:

* credential stuffing: ``LOGIN_FAILED`` events grouped by source IP
* bulk access: read/download events grouped by actor

A group is flagged when its count reaches the threshold. The result is a
point-in-time report and is not written back to the trail.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import session_scope
from ..settings import settings
from .exceptions import AuditConfigurationError, AuditQueryError, store_errors
from .models import ActorRole, AuditAction, AuditEvent, utcnow
from .schemas import AnomalySnapshot, FlaggedActor, FlaggedIP

logger = structlog.get_logger(__name__)


def _action_codes(actions: Sequence[AuditAction | str]) -> list[str]:
    return [AuditAction(a).value for a in actions]


def configured_bulk_access_actions() -> list[str]:
    """Action codes from ``AUDIT__BULK_ACCESS_ACTIONS``, checked against ``AuditAction``."""
    try:
        return _action_codes(settings.audit.bulk_access_actions)
    except ValueError as e:
        raise AuditConfigurationError(f"AUDIT__BULK_ACCESS_ACTIONS: {e}") from e


def check_anomaly_configuration() -> None:
    """Fail fast on a misconfigured detector. Called at application startup."""
    configured_bulk_access_actions()


class AnomalyDetector:
    """Flags IPs with repeated failed logins and actors reading in bulk."""

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        window_hours: int | None = None,
        failed_login_threshold: int | None = None,
        bulk_access_threshold: int | None = None,
        bulk_access_actions: Sequence[AuditAction | str] | None = None,
    ):
        self._session = session
        self._session_factory = session_factory

        self.window_hours = window_hours or settings.audit.anomaly_window_hours
        self.failed_login_threshold = failed_login_threshold or settings.audit.failed_login_threshold
        self.bulk_access_threshold = bulk_access_threshold or settings.audit.bulk_access_threshold

        if bulk_access_actions:
            try:
                self.bulk_access_actions = _action_codes(bulk_access_actions)
            except ValueError as e:
                raise AuditQueryError(f"Invalid bulk access action: {e}") from e
        else:
            self.bulk_access_actions = configured_bulk_access_actions()

    def _get_session(self) -> Any:
        return session_scope(self._session, self._session_factory)

    async def detect_anomalies(self) -> AnomalySnapshot:
        computed_at = utcnow()
        since = computed_at - timedelta(hours=self.window_hours)
        in_window = and_(AuditEvent.timestamp >= since, AuditEvent.timestamp <= computed_at)

        with store_errors("detect_anomalies"):
            async with self._get_session() as session:
                flagged_ips = await self._failed_logins(session, in_window)
                flagged_actors = await self._bulk_access(session, in_window)

        snapshot = AnomalySnapshot(
            computed_at=computed_at,
            window_hours=self.window_hours,
            failed_login_threshold=self.failed_login_threshold,
            bulk_access_threshold=self.bulk_access_threshold,
            flagged_ips=flagged_ips,
            flagged_actors=flagged_actors,
        )

        if snapshot.has_anomalies:
            logger.warning(
                "audit.anomalies.detected",
                flagged_ips=[ip.ip_address for ip in flagged_ips],
                flagged_actors=[actor.actor_id for actor in flagged_actors],
            )
        return snapshot

    async def _failed_logins(self, session: AsyncSession, in_window: Any) -> list[FlaggedIP]:
        failed = and_(in_window, AuditEvent.action == AuditAction.LOGIN_FAILED.value)
        count = func.count(AuditEvent.id).label("count")

        rows = await session.execute(
            select(AuditEvent.ip_address, count)
            .where(failed)
            .group_by(AuditEvent.ip_address)
            .having(count >= self.failed_login_threshold)
            .order_by(count.desc(), AuditEvent.ip_address.asc())
        )
        counts = dict(rows.all())
        if not counts:
            return []

        identifier_rows = await session.execute(
            select(AuditEvent.ip_address, AuditEvent.actor_email)
            .where(failed, AuditEvent.ip_address.in_(list(counts)))
            .distinct()
        )
        identifiers: dict[str, set[str]] = defaultdict(set)
        for ip, email in identifier_rows.all():
            identifiers[ip].add(email)

        return [
            FlaggedIP(
                ip_address=ip,
                count=total,
                attempted_identifiers=sorted(identifiers.get(ip, ())),
            )
            for ip, total in counts.items()
        ]

    async def _bulk_access(self, session: AsyncSession, in_window: Any) -> list[FlaggedActor]:
        bulk = and_(in_window, AuditEvent.action.in_(self.bulk_access_actions))
        count = func.count(AuditEvent.id).label("count")

        rows = await session.execute(
            select(AuditEvent.actor_id, count)
            .where(bulk)
            .group_by(AuditEvent.actor_id)
            .having(count >= self.bulk_access_threshold)
            .order_by(count.desc(), AuditEvent.actor_id.asc())
        )
        counts = dict(rows.all())
        if not counts:
            return []

        # Most recent snapshot wins when an actor's name or role changed
        profile_rows = await session.execute(
            select(AuditEvent.actor_id, AuditEvent.actor_name, AuditEvent.actor_role)
            .where(bulk, AuditEvent.actor_id.in_(list(counts)))
            .order_by(AuditEvent.timestamp.desc())
        )
        profiles: dict[str, tuple[str, str]] = {}
        for actor_id, name, role in profile_rows.all():
            profiles.setdefault(actor_id, (name, role))

        resource_rows = await session.execute(
            select(AuditEvent.actor_id, AuditEvent.resource_id)
            .where(
                bulk,
                AuditEvent.actor_id.in_(list(counts)),
                AuditEvent.resource_id.is_not(None),
            )
            .distinct()
        )
        resources: dict[str, set[str]] = defaultdict(set)
        for actor_id, resource_id in resource_rows.all():
            resources[actor_id].add(resource_id)

        flagged = []
        for actor_id, total in counts.items():
            name, role = profiles.get(actor_id, (None, None))
            flagged.append(
                FlaggedActor(
                    actor_id=actor_id,
                    actor_name=name,
                    actor_role=ActorRole(role) if role else None,
                    count=total,
                    resource_ids=sorted(resources.get(actor_id, ())),
                )
            )
        return flagged


__all__ = ["AnomalyDetector", "check_anomaly_configuration", "configured_bulk_access_actions"]
