"""
Audit event models for the EduRisk platform.

One ``AuditEvent`` row is one immutable entry in the audit trail. Actor data is
a snapshot taken at write time; resource and related-entity ids are weak
references that stay valid after the referenced objects are gone.
"""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_core import to_jsonable_python
from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text, event
from sqlalchemy import Uuid as SAUuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from ..db import Base
from ..settings import settings
from .exceptions import AuditImmutableError, AuditValidationError


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ==========================================
# Closed enumerations
# ==========================================


class ActorRole(str, Enum):
    """Roles an actor can hold when an event is recorded."""

    ADMIN = "admin"
    TEACHER = "teacher"
    COUNSELOR = "counselor"
    PARENT = "parent"
    SYSTEM = "system"
    ANONYMOUS = "anonymous"


class AuditAction(str, Enum):
    """Types of actions that can be audited."""

    # Authentication
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LOGIN_FAILED = "LOGIN_FAILED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PASSWORD_RESET = "PASSWORD_RESET"

    # Student lifecycle
    STUDENT_CREATED = "STUDENT_CREATED"
    STUDENT_UPDATED = "STUDENT_UPDATED"
    STUDENT_DELETED = "STUDENT_DELETED"
    STUDENT_VIEWED = "STUDENT_VIEWED"
    STUDENT_IMPORTED = "STUDENT_IMPORTED"
    STUDENT_EXPORTED = "STUDENT_EXPORTED"

    # Attendance
    ATTENDANCE_MARKED = "ATTENDANCE_MARKED"
    ATTENDANCE_UPDATED = "ATTENDANCE_UPDATED"
    ATTENDANCE_BULK_MARKED = "ATTENDANCE_BULK_MARKED"

    # Grades
    GRADE_ADDED = "GRADE_ADDED"
    GRADE_UPDATED = "GRADE_UPDATED"
    GRADE_DELETED = "GRADE_DELETED"
    GRADE_PUBLISHED = "GRADE_PUBLISHED"

    # Interventions
    INTERVENTION_CREATED = "INTERVENTION_CREATED"
    INTERVENTION_UPDATED = "INTERVENTION_UPDATED"
    INTERVENTION_APPROVED = "INTERVENTION_APPROVED"
    INTERVENTION_REJECTED = "INTERVENTION_REJECTED"
    INTERVENTION_COMPLETED = "INTERVENTION_COMPLETED"
    INTERVENTION_CANCELLED = "INTERVENTION_CANCELLED"

    # Counseling sessions
    SESSION_SCHEDULED = "SESSION_SCHEDULED"
    SESSION_CONDUCTED = "SESSION_CONDUCTED"
    SESSION_CANCELLED = "SESSION_CANCELLED"
    SESSION_RESCHEDULED = "SESSION_RESCHEDULED"

    # Risk assessment
    RISK_CALCULATED = "RISK_CALCULATED"
    RISK_UPDATED = "RISK_UPDATED"
    RISK_VALIDATED = "RISK_VALIDATED"

    # Reports
    REPORT_GENERATED = "REPORT_GENERATED"
    REPORT_DOWNLOADED = "REPORT_DOWNLOADED"
    REPORT_SHARED = "REPORT_SHARED"

    # Notifications
    NOTIFICATION_SENT = "NOTIFICATION_SENT"
    NOTIFICATION_READ = "NOTIFICATION_READ"

    # Documents
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    DOCUMENT_DOWNLOADED = "DOCUMENT_DOWNLOADED"
    DOCUMENT_DELETED = "DOCUMENT_DELETED"
    DOCUMENT_VERIFIED = "DOCUMENT_VERIFIED"

    # User management
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_ACTIVATED = "USER_ACTIVATED"

    # System
    SYSTEM_BACKUP = "SYSTEM_BACKUP"
    SYSTEM_RESTORE = "SYSTEM_RESTORE"
    SETTINGS_UPDATED = "SETTINGS_UPDATED"

    # Data export/import
    DATA_EXPORTED = "DATA_EXPORTED"
    DATA_IMPORTED = "DATA_IMPORTED"

    OTHER = "OTHER"


class ResourceType(str, Enum):
    """Kinds of objects an audited action can target."""

    STUDENT = "Student"
    USER = "User"
    ATTENDANCE = "Attendance"
    GRADE = "Grade"
    INTERVENTION = "Intervention"
    SESSION = "Session"
    RISK_FACTOR = "RiskFactor"
    NOTIFICATION = "Notification"
    DOCUMENT = "Document"
    REPORT = "Report"
    CLASS = "Class"
    SETTING = "Setting"
    SYSTEM = "System"
    OTHER = "Other"


class RiskLevel(str, Enum):
    """Risk classification of an audited action."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class EventStatus(str, Enum):
    """Outcome of an audited action."""

    SUCCESS = "Success"
    FAILED = "Failed"
    PARTIAL = "Partial"
    WARNING = "Warning"


class ComplianceType(str, Enum):
    """Regulatory frame an event is relevant to."""

    GDPR = "GDPR"
    FERPA = "FERPA"
    DATA_PROTECTION = "Data Protection"
    PRIVACY = "Privacy"
    OTHER = "Other"


class RequestMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


# ==========================================
# Value objects
# ==========================================


def _lookup(source: Any, *names: str) -> Any:
    """Read the first present attribute or key among ``names``."""
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value is not None:
            return value
    return None


class ActorSnapshot(BaseModel):
    """Who performed the action, frozen at write time."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(min_length=1)
    role: ActorRole
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    @classmethod
    def coerce(cls, user: Any) -> "ActorSnapshot":
        """Build a snapshot from a snapshot, mapping or user-like object."""
        if isinstance(user, cls):
            return user

        name = _lookup(user, "name", "full_name", "fullName", "display_name", "username")
        if name is None:
            first = _lookup(user, "first_name", "firstName")
            last = _lookup(user, "last_name", "lastName")
            name = " ".join(part for part in (first, last) if part) or None

        return cls(
            id=_lookup(user, "id", "user_id", "_id"),
            role=_lookup(user, "role"),
            name=name,
            email=_lookup(user, "email"),
        )

    @classmethod
    def anonymous(cls, identifier: str | None = None) -> "ActorSnapshot":
        """Actor used when no authenticated user exists (e.g. failed logins)."""
        return cls(
            id="anonymous",
            role=ActorRole.ANONYMOUS,
            name="Unknown",
            email=identifier or "unknown",
        )

    @classmethod
    def system(cls) -> "ActorSnapshot":
        return cls(id="system", role=ActorRole.SYSTEM, name="System", email="system@localhost")


class ResourceRef(BaseModel):
    """The object an action targets."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    type: ResourceType
    id: str | None = None
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class EventLocation(BaseModel):
    """Where a request came from, as resolved by the host application."""

    model_config = ConfigDict(str_strip_whitespace=True)

    country: str | None = None
    city: str | None = None
    coordinates: Coordinates | None = None


# ==========================================
# Database model
# ==========================================


class AuditEvent(Base):
    """Audit event table. Rows are written once and never updated."""

    __tablename__ = "audit_events"

    id: Mapped[UUID] = mapped_column(SAUuid(as_uuid=True), primary_key=True, default=uuid4)

    # Who
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # What
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    resource_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resource_name: Mapped[str | None] = mapped_column(String(500), nullable=True)

    related_student_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    related_class_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Request context
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    request_method: Mapped[str | None] = mapped_column(String(10), nullable=True)
    request_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_headers: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_time_ms: Mapped[float | None] = mapped_column(Float, nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_info: Mapped[str | None] = mapped_column(String(500), nullable=True)
    location: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Change payload
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    changed_fields: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Additional context ("metadata" is reserved by the declarative base)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Risk and outcome
    risk_level: Mapped[str] = mapped_column(String(10), nullable=False, default=RiskLevel.LOW.value)
    is_suspicious: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    suspicious_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default=EventStatus.SUCCESS.value)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Compliance and retention
    is_compliance_relevant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    compliance_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    retention_period_days: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Indexes for common queries
    __table_args__ = (
        Index("ix_audit_events_actor_timestamp", "actor_id", "timestamp"),
        Index("ix_audit_events_action_timestamp", "action", "timestamp"),
        Index("ix_audit_events_resource", "resource_type", "resource_id"),
        Index("ix_audit_events_student_timestamp", "related_student_id", "timestamp"),
        Index("ix_audit_events_ip_address", "ip_address"),
        Index("ix_audit_events_timestamp", "timestamp"),
        Index("ix_audit_events_risk_suspicious", "risk_level", "is_suspicious"),
        Index("ix_audit_events_status", "status"),
        Index("ix_audit_events_expires_at", "expires_at"),
    )

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("id", uuid4())
        kwargs.setdefault("timestamp", utcnow())
        kwargs.setdefault("retention_period_days", settings.audit.default_retention_days)
        kwargs.setdefault("ip_address", "unknown")
        kwargs.setdefault("risk_level", RiskLevel.LOW)
        kwargs.setdefault("status", EventStatus.SUCCESS)
        kwargs.setdefault("is_suspicious", False)
        kwargs.setdefault("is_compliance_relevant", False)
        kwargs.setdefault("changed_fields", [])
        kwargs.setdefault("tags", [])
        if "expires_at" not in kwargs:
            kwargs["expires_at"] = compute_expiry(
                kwargs["timestamp"], kwargs["retention_period_days"]
            )
        super().__init__(**kwargs)

    @validates("actor_role", "action", "resource_type", "risk_level", "status",
               "compliance_type", "request_method")
    def _validate_enum(self, key: str, value: Any) -> str | None:
        if value is None:
            if key in ("actor_role", "action", "risk_level", "status"):
                raise AuditValidationError(
                    f"{key} is required", [{"loc": (key,), "msg": "required", "type": "missing"}]
                )
            return None
        enum_cls = _ENUM_COLUMNS[key]
        try:
            return enum_cls(value).value
        except ValueError as e:
            raise AuditValidationError(
                f"Invalid {key}: {value!r}",
                [{"loc": (key,), "msg": str(e), "type": "enum"}],
            ) from e

    @classmethod
    def from_create(cls, data: "AuditEventCreate", *, timestamp: datetime | None = None) -> "AuditEvent":
        """Materialize a validated record for insertion."""
        return cls(
            actor_id=data.actor.id,
            actor_role=data.actor.role,
            actor_name=data.actor.name,
            actor_email=data.actor.email,
            action=data.action,
            description=data.description,
            resource_type=data.resource_type,
            resource_id=data.resource_id,
            resource_name=data.resource_name,
            related_student_id=data.related_student_id,
            related_class_id=data.related_class_id,
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            request_method=data.request_method,
            request_url=data.request_url,
            request_headers=data.request_headers,
            request_id=data.request_id,
            response_status=data.response_status,
            response_time_ms=data.response_time_ms,
            session_id=data.session_id,
            device_info=data.device_info,
            location=data.location.model_dump(exclude_none=True) if data.location else None,
            old_values=data.old_values,
            new_values=data.new_values,
            changed_fields=list(data.changed_fields),
            details=data.metadata,
            tags=list(data.tags),
            risk_level=data.risk_level,
            is_suspicious=data.is_suspicious,
            suspicious_reason=data.suspicious_reason,
            status=data.status,
            error_message=data.error_message,
            error_code=data.error_code,
            is_compliance_relevant=data.is_compliance_relevant,
            compliance_type=data.compliance_type,
            retention_period_days=data.retention_period_days,
            timestamp=timestamp or utcnow(),
        )

    @property
    def retention_deadline(self) -> datetime:
        return ensure_utc(self.expires_at)

    def should_retain(self, now: datetime | None = None) -> bool:
        """True while the record is inside its retention window."""
        return ensure_utc(now or utcnow()) < self.retention_deadline

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AuditEvent):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __lt__(self, other: "AuditEvent") -> bool:
        return ensure_utc(self.timestamp) < ensure_utc(other.timestamp)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.id} {self.action} actor={self.actor_id}>"


_ENUM_COLUMNS: dict[str, type[Enum]] = {
    "actor_role": ActorRole,
    "action": AuditAction,
    "resource_type": ResourceType,
    "risk_level": RiskLevel,
    "status": EventStatus,
    "compliance_type": ComplianceType,
    "request_method": RequestMethod,
}

# Bounded string columns fed from request headers or caller input
_COLUMN_LIMITS: dict[str, int] = {
    name: AuditEvent.__table__.c[name].type.length
    for name in ("ip_address", "user_agent", "device_info", "resource_name", "request_id")
}


def compute_expiry(timestamp: datetime, retention_period_days: int) -> datetime:
    """Retention deadline, with the global maximum acting as an upper bound."""
    days = min(int(retention_period_days), settings.audit.max_retention_days)
    return ensure_utc(timestamp) + timedelta(days=days)


@event.listens_for(AuditEvent, "before_update")
def _reject_update(mapper: Any, connection: Any, target: AuditEvent) -> None:
    raise AuditImmutableError(f"Audit event {target.id} is append-only and cannot be updated")


# ==========================================
# Pydantic models for creation
# ==========================================


class AuditEventCreate(BaseModel):
    """Canonical, validated argument set for one audit record."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    actor: ActorSnapshot
    action: AuditAction
    description: str = Field(min_length=1)

    resource_type: ResourceType | None = None
    resource_id: str | None = None
    resource_name: str | None = None
    related_student_id: str | None = None
    related_class_id: str | None = None

    ip_address: str = Field(default="unknown", min_length=1)
    user_agent: str | None = None
    request_method: RequestMethod | None = None
    request_url: str | None = None
    request_headers: dict[str, str] | None = None
    request_id: str | None = None
    response_status: int | None = Field(default=None, ge=100, le=599)
    response_time_ms: float | None = Field(default=None, ge=0)
    session_id: str | None = None
    device_info: str | None = None
    location: EventLocation | None = None

    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    changed_fields: list[str] = Field(default_factory=list)

    metadata: dict[str, Any] | None = None
    tags: list[str] = Field(default_factory=list)

    risk_level: RiskLevel = RiskLevel.LOW
    is_suspicious: bool = False
    suspicious_reason: str | None = None

    status: EventStatus = EventStatus.SUCCESS
    error_message: str | None = None
    error_code: str | None = None

    is_compliance_relevant: bool = False
    compliance_type: ComplianceType | None = None
    retention_period_days: int = Field(
        default_factory=lambda: settings.audit.default_retention_days, ge=1
    )

    @field_validator("actor", mode="before")
    @classmethod
    def coerce_actor(cls, v: Any) -> Any:
        if v is None or isinstance(v, ActorSnapshot):
            return v
        return ActorSnapshot.coerce(v)

    @field_validator(
        "resource_id", "related_student_id", "related_class_id", "session_id", mode="before"
    )
    @classmethod
    def stringify_reference(cls, v: Any) -> Any:
        return str(v) if v is not None else v

    @field_validator("request_method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("ip_address", mode="before")
    @classmethod
    def fit_ip_address(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "unknown"
        return v.strip()[:_COLUMN_LIMITS["ip_address"]] if isinstance(v, str) else v

    @field_validator("user_agent", "device_info", "resource_name", "request_id", mode="before")
    @classmethod
    def fit_column(cls, v: Any, info: ValidationInfo) -> Any:
        # Caller-controlled values are truncated, never rejected
        return v.strip()[:_COLUMN_LIMITS[info.field_name]] if isinstance(v, str) else v

    @field_validator("old_values", "new_values", "metadata", mode="before")
    @classmethod
    def jsonable_payload(cls, v: Any) -> Any:
        # Dates, UUIDs and decimals from domain objects must survive the JSON column
        return to_jsonable_python(v, fallback=str) if v is not None else v

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(tag for tag in v if tag))

    @model_validator(mode="after")
    def derive_changed_fields(self) -> "AuditEventCreate":
        if not self.changed_fields and self.old_values is not None and self.new_values is not None:
            keys = list(dict.fromkeys([*self.old_values, *self.new_values]))
            self.changed_fields = [
                key for key in keys if self.old_values.get(key) != self.new_values.get(key)
            ]
        return self


def build_event(**fields: Any) -> AuditEventCreate:
    """Validate raw fields into an ``AuditEventCreate``.

    Raises:
        AuditValidationError: a required field is missing or a value falls
            outside its closed set. ``errors`` lists every offending field.
    """
    try:
        return AuditEventCreate(**fields)
    except ValidationError as e:
        errors = [
            {"loc": tuple(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in e.errors()
        ]
        raise AuditValidationError(
            f"Invalid audit event ({len(errors)} error(s))", errors
        ) from e
    except AuditValidationError:
        raise
    except (TypeError, ValueError) as e:
        raise AuditValidationError(str(e)) from e


# ==========================================
# Pydantic models for API responses
# ==========================================


class AuditEventResponse(BaseModel):
    """Default projection: excludes header snapshot and before/after payloads."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    timestamp: datetime
    actor_id: str
    actor_role: ActorRole
    actor_name: str
    actor_email: str
    action: AuditAction
    description: str
    resource_type: ResourceType | None = None
    resource_id: str | None = None
    resource_name: str | None = None
    related_student_id: str | None = None
    related_class_id: str | None = None
    ip_address: str
    user_agent: str | None = None
    request_method: RequestMethod | None = None
    request_url: str | None = None
    request_id: str | None = None
    response_status: int | None = None
    response_time_ms: float | None = None
    changed_fields: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("details", "metadata")
    )
    tags: list[str] = Field(default_factory=list)
    risk_level: RiskLevel
    is_suspicious: bool
    suspicious_reason: str | None = None
    status: EventStatus
    error_message: str | None = None
    error_code: str | None = None
    is_compliance_relevant: bool
    compliance_type: ComplianceType | None = None
    retention_period_days: int

    @field_validator("timestamp")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class AuditEventDetail(AuditEventResponse):
    """Full projection including sensitive and bulky fields."""

    request_headers: dict[str, str] | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    session_id: str | None = None
    device_info: str | None = None
    location: dict[str, Any] | None = None
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def expires_as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class AuditEventPage(BaseModel):
    """One page of query results."""

    records: list[AuditEventResponse]
    page: int
    limit: int
    total: int
    page_count: int


# ==========================================
# Query parameters
# ==========================================


class SortField(str, Enum):
    TIMESTAMP = "timestamp"
    ACTION = "action"
    ACTOR_ID = "actor_id"
    ACTOR_ROLE = "actor_role"
    RISK_LEVEL = "risk_level"
    STATUS = "status"
    RESOURCE_TYPE = "resource_type"
    IP_ADDRESS = "ip_address"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class AuditFilterParams(BaseModel):
    """Conjunctive filters; ``None`` means "do not filter on this field"."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    actor_id: str | None = None
    action: AuditAction | None = None
    resource_type: ResourceType | None = None
    resource_id: str | None = None
    risk_level: RiskLevel | None = None
    is_suspicious: bool | None = None
    status: EventStatus | None = None
    related_student_id: str | None = None
    ip_address: str | None = None
    search: str | None = Field(default=None, min_length=1, max_length=200)
    start_date: datetime | None = None
    end_date: datetime | None = None

    @model_validator(mode="after")
    def check_date_range(self) -> "AuditFilterParams":
        if self.start_date and self.end_date and ensure_utc(self.start_date) > ensure_utc(self.end_date):
            raise ValueError("start_date must not be after end_date")
        return self


class PaginationParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: settings.audit.default_page_size, ge=1)
    sort_by: SortField = SortField.TIMESTAMP
    sort_order: SortOrder = SortOrder.DESC
