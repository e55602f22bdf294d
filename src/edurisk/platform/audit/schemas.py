"""
Result models for audit analytics, anomaly scans and retention sweeps.
"""

from datetime import date, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from .models import ActorRole, AuditAction, RiskLevel


class RoleActivity(BaseModel):
    role: ActorRole
    count: int
    distinct_actors: int


class ActionCount(BaseModel):
    action: AuditAction
    count: int


class RiskCount(BaseModel):
    risk_level: RiskLevel
    count: int


class AuditStatistics(BaseModel):
    """Aggregate view of the trail over ``[since, until]``."""

    window_days: int
    since: datetime
    until: datetime
    total_events: int
    suspicious_event_count: int
    failed_event_count: int
    role_activity: list[RoleActivity] = Field(default_factory=list)
    action_distribution: list[ActionCount] = Field(default_factory=list)
    risk_distribution: list[RiskCount] = Field(default_factory=list)


class DailyCount(BaseModel):
    date: date
    count: int


class ActionActivity(BaseModel):
    action: AuditAction
    total_count: int
    distinct_actors: int
    daily_activity: list[DailyCount] = Field(default_factory=list)


class ActivitySummary(BaseModel):
    window_days: int
    since: datetime
    until: datetime
    actions: list[ActionActivity] = Field(default_factory=list)


class FlaggedIP(BaseModel):
    """An address with repeated failed logins."""

    ip_address: str
    count: int
    attempted_identifiers: list[str] = Field(default_factory=list)


class FlaggedActor(BaseModel):
    """An actor reading or downloading records in bulk."""

    actor_id: str
    actor_name: str | None = None
    actor_role: ActorRole | None = None
    count: int
    resource_ids: list[str] = Field(default_factory=list)

    @property
    def distinct_resources(self) -> int:
        return len(self.resource_ids)


class AnomalySnapshot(BaseModel):
    """Point-in-time anomaly report. Never persisted."""

    computed_at: datetime
    window_hours: int
    failed_login_threshold: int
    bulk_access_threshold: int
    flagged_ips: list[FlaggedIP] = Field(default_factory=list)
    flagged_actors: list[FlaggedActor] = Field(default_factory=list)

    @property
    def has_anomalies(self) -> bool:
        return bool(self.flagged_ips or self.flagged_actors)


class SweepResult(BaseModel):
    cutoff: datetime
    dry_run: bool
    deleted: int = 0
    archived: int = 0
    archive_file: Path | None = None


class RetentionStatistics(BaseModel):
    total_records: int
    expired_records: int
    oldest_record: datetime | None = None
    newest_record: datetime | None = None
    next_expiry: datetime | None = None
    default_retention_days: int
    max_retention_days: int


__all__ = [
    "ActionActivity",
    "ActionCount",
    "ActivitySummary",
    "AnomalySnapshot",
    "AuditStatistics",
    "DailyCount",
    "FlaggedActor",
    "FlaggedIP",
    "RetentionStatistics",
    "RiskCount",
    "RoleActivity",
    "SweepResult",
]
