"""
Read path of the audit trail: filtered, paginated and per-entity queries.

Readers never swallow errors. Bad input raises ``AuditQueryError`` and store
failures raise ``AuditPersistenceError``.
"""

from collections.abc import Mapping
from datetime import datetime, timedelta
from math import ceil
from typing import Any, TypeVar
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import defer

from ..db import session_scope
from ..settings import settings
from .exceptions import AuditQueryError, store_errors
from .models import (
    AuditEvent,
    AuditEventDetail,
    AuditEventPage,
    AuditEventResponse,
    AuditFilterParams,
    EventStatus,
    PaginationParams,
    ResourceType,
    RiskLevel,
    SortField,
    SortOrder,
    ensure_utc,
    utcnow,
)

logger = structlog.get_logger(__name__)

ParamsT = TypeVar("ParamsT", bound=BaseModel)

_SORT_COLUMNS = {
    SortField.TIMESTAMP: AuditEvent.timestamp,
    SortField.ACTION: AuditEvent.action,
    SortField.ACTOR_ID: AuditEvent.actor_id,
    SortField.ACTOR_ROLE: AuditEvent.actor_role,
    SortField.RISK_LEVEL: AuditEvent.risk_level,
    SortField.STATUS: AuditEvent.status,
    SortField.RESOURCE_TYPE: AuditEvent.resource_type,
    SortField.IP_ADDRESS: AuditEvent.ip_address,
}

# Kept out of the default projection
_SENSITIVE_COLUMNS = (
    AuditEvent.request_headers,
    AuditEvent.old_values,
    AuditEvent.new_values,
)


def _coerce_params(model: type[ParamsT], value: Any) -> ParamsT:
    if value is None:
        return model()
    if isinstance(value, model):
        return value
    if not isinstance(value, Mapping):
        raise AuditQueryError(f"Expected {model.__name__} or mapping, got {type(value).__name__}")
    try:
        return model.model_validate(dict(value))
    except ValidationError as e:
        raise AuditQueryError(f"Invalid {model.__name__}: {e}") from e


def _check_limit(limit: int) -> None:
    if limit < 1 or limit > settings.audit.max_page_size:
        raise AuditQueryError(
            f"limit must be between 1 and {settings.audit.max_page_size}, got {limit}"
        )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_conditions(filters: AuditFilterParams) -> list:
    """Translate filters into a conjunctive list of SQL conditions."""
    conditions = []

    if filters.actor_id:
        conditions.append(AuditEvent.actor_id == filters.actor_id)
    if filters.action:
        conditions.append(AuditEvent.action == filters.action.value)
    if filters.resource_type:
        conditions.append(AuditEvent.resource_type == filters.resource_type.value)
    if filters.resource_id:
        conditions.append(AuditEvent.resource_id == filters.resource_id)
    if filters.risk_level:
        conditions.append(AuditEvent.risk_level == filters.risk_level.value)
    if filters.is_suspicious is not None:
        conditions.append(AuditEvent.is_suspicious == filters.is_suspicious)
    if filters.status:
        conditions.append(AuditEvent.status == filters.status.value)
    if filters.related_student_id:
        conditions.append(AuditEvent.related_student_id == filters.related_student_id)
    if filters.ip_address:
        conditions.append(AuditEvent.ip_address == filters.ip_address)

    if filters.search:
        pattern = f"%{_escape_like(filters.search)}%"
        conditions.append(
            or_(
                AuditEvent.description.ilike(pattern, escape="\\"),
                AuditEvent.resource_name.ilike(pattern, escape="\\"),
                AuditEvent.error_message.ilike(pattern, escape="\\"),
            )
        )

    if filters.start_date:
        conditions.append(AuditEvent.timestamp >= ensure_utc(filters.start_date))
    if filters.end_date:
        conditions.append(AuditEvent.timestamp <= ensure_utc(filters.end_date))

    return conditions


def _where(stmt: Select, conditions: list) -> Select:
    return stmt.where(and_(*conditions)) if conditions else stmt


def _project(event: AuditEvent, include_sensitive: bool) -> AuditEventResponse:
    if include_sensitive:
        return AuditEventDetail.model_validate(event)
    return AuditEventResponse.model_validate(event)


class AuditQueryService:
    """Service for retrieving audit events."""

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self._session = session
        self._session_factory = session_factory

    def _get_session(self) -> Any:
        return session_scope(self._session, self._session_factory)

    async def query_events(
        self,
        filters: AuditFilterParams | Mapping[str, Any] | None = None,
        pagination: PaginationParams | Mapping[str, Any] | None = None,
        *,
        include_sensitive: bool = False,
    ) -> AuditEventPage:
        """
        Return one page of events matching every given filter.

        Results are ordered by ``sort_by``/``sort_order`` with the event id as
        a tiebreaker, so walking all pages yields every match exactly once.
        """
        filters = _coerce_params(AuditFilterParams, filters)
        pagination = _coerce_params(PaginationParams, pagination)
        _check_limit(pagination.limit)

        conditions = build_conditions(filters)
        sort_column = _SORT_COLUMNS[pagination.sort_by]
        if pagination.sort_order == SortOrder.ASC:
            ordering = (sort_column.asc(), AuditEvent.id.asc())
        else:
            ordering = (sort_column.desc(), AuditEvent.id.desc())

        offset = (pagination.page - 1) * pagination.limit

        with store_errors("query_events"):
            async with self._get_session() as session:
                total = await session.scalar(
                    _where(select(func.count()).select_from(AuditEvent), conditions)
                ) or 0

                stmt = (
                    _where(select(AuditEvent), conditions)
                    .order_by(*ordering)
                    .offset(offset)
                    .limit(pagination.limit)
                )
                if not include_sensitive:
                    stmt = stmt.options(*(defer(column) for column in _SENSITIVE_COLUMNS))

                result = await session.execute(stmt)
                records = [_project(event, include_sensitive) for event in result.scalars().all()]

        logger.debug(
            "audit.query.executed",
            total=total,
            page=pagination.page,
            returned=len(records),
        )

        return AuditEventPage(
            records=records,
            page=pagination.page,
            limit=pagination.limit,
            total=total,
            page_count=ceil(total / pagination.limit) if total else 0,
        )

    async def _fetch(self, conditions: list, limit: int, operation: str) -> list[AuditEventResponse]:
        _check_limit(limit)
        stmt = (
            _where(select(AuditEvent), conditions)
            .options(*(defer(column) for column in _SENSITIVE_COLUMNS))
            .order_by(AuditEvent.timestamp.desc(), AuditEvent.id.desc())
            .limit(limit)
        )
        with store_errors(operation):
            async with self._get_session() as session:
                result = await session.execute(stmt)
                return [AuditEventResponse.model_validate(e) for e in result.scalars().all()]

    async def activity_for_actor(
        self,
        actor_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[AuditEventResponse]:
        """Most recent events performed by one actor."""
        filters = _coerce_params(
            AuditFilterParams, {"actor_id": actor_id, "start_date": start, "end_date": end}
        )
        if not filters.actor_id:
            raise AuditQueryError("actor_id is required")
        return await self._fetch(build_conditions(filters), limit, "activity_for_actor")

    async def history_for_resource(
        self,
        resource_type: ResourceType | str,
        resource_id: str,
        limit: int = 50,
    ) -> list[AuditEventResponse]:
        """Most recent events that targeted one resource."""
        filters = _coerce_params(
            AuditFilterParams, {"resource_type": resource_type, "resource_id": resource_id}
        )
        if not filters.resource_id:
            raise AuditQueryError("resource_id is required")
        return await self._fetch(build_conditions(filters), limit, "history_for_resource")

    async def history_for_student(self, student_id: str, limit: int = 100) -> list[AuditEventResponse]:
        """Every event that targeted a student or was recorded against one."""
        student_id = str(student_id).strip() if student_id is not None else ""
        if not student_id:
            raise AuditQueryError("student_id is required")
        conditions = [
            or_(
                AuditEvent.related_student_id == student_id,
                and_(
                    AuditEvent.resource_type == ResourceType.STUDENT.value,
                    AuditEvent.resource_id == student_id,
                ),
            )
        ]
        return await self._fetch(conditions, limit, "history_for_student")

    async def get_event(
        self, event_id: UUID | str, *, include_sensitive: bool = True
    ) -> AuditEventResponse | None:
        """Single event by id, or ``None`` when it does not exist."""
        try:
            key = event_id if isinstance(event_id, UUID) else UUID(str(event_id))
        except ValueError as e:
            raise AuditQueryError(f"Invalid event id: {event_id!r}") from e

        with store_errors("get_event"):
            async with self._get_session() as session:
                event = await session.get(AuditEvent, key)
                return _project(event, include_sensitive) if event is not None else None

    async def suspicious_activities(self, days: int = 7, limit: int | None = None) -> list[AuditEventResponse]:
        """Recent events that are flagged, high risk or failed."""
        if days < 1:
            raise AuditQueryError(f"days must be positive, got {days}")
        since = utcnow() - timedelta(days=days)
        conditions = [
            AuditEvent.timestamp >= since,
            or_(
                AuditEvent.is_suspicious.is_(True),
                AuditEvent.risk_level.in_([RiskLevel.HIGH.value, RiskLevel.CRITICAL.value]),
                AuditEvent.status == EventStatus.FAILED.value,
            ),
        ]
        return await self._fetch(
            conditions, limit or settings.audit.max_page_size, "suspicious_activities"
        )


__all__ = ["AuditQueryService", "build_conditions"]
