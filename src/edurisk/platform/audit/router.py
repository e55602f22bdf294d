"""
FastAPI router for the audit read surface.

Authorization is left to the host application, which mounts this router
behind its own dependencies.
"""

from datetime import datetime
from typing import NoReturn
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_async_session
from .aggregator import AuditAggregator
from .anomaly import AnomalyDetector
from .exceptions import AuditError, AuditPersistenceError, AuditQueryError
from .models import (
    AuditAction,
    AuditEventDetail,
    AuditEventPage,
    AuditEventResponse,
    EventStatus,
    ResourceType,
    RiskLevel,
    SortField,
    SortOrder,
)
from .query import AuditQueryService
from .retention import AuditRetentionService
from .schemas import ActivitySummary, AnomalySnapshot, AuditStatistics, RetentionStatistics

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/audit", tags=["Audit"])


def _raise_http(e: AuditError, operation: str) -> NoReturn:
    if isinstance(e, AuditQueryError):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, AuditPersistenceError):
        logger.error("audit.api.store_unavailable", operation=operation, error=str(e))
        raise HTTPException(status_code=503, detail="Audit store unavailable") from e
    logger.error("audit.api.failed", operation=operation, error=str(e), exc_info=True)
    raise HTTPException(status_code=500, detail=f"Failed to {operation.replace('_', ' ')}") from e


@router.get("/events", response_model=AuditEventPage)
async def list_events(
    actor_id: str | None = Query(None, description="Filter by actor ID"),
    action: AuditAction | None = Query(None, description="Filter by action code"),
    resource_type: ResourceType | None = Query(None, description="Filter by resource type"),
    resource_id: str | None = Query(None, description="Filter by resource ID"),
    risk_level: RiskLevel | None = Query(None, description="Filter by risk level"),
    is_suspicious: bool | None = Query(None, description="Filter by suspicious flag"),
    status: EventStatus | None = Query(None, description="Filter by outcome"),
    related_student_id: str | None = Query(None, description="Filter by related student"),
    ip_address: str | None = Query(None, description="Filter by source IP"),
    search: str | None = Query(None, description="Substring of description, resource or error"),
    start_date: datetime | None = Query(None, description="Earliest timestamp (inclusive)"),
    end_date: datetime | None = Query(None, description="Latest timestamp (inclusive)"),
    page: int = Query(1, description="Page number"),
    limit: int | None = Query(None, description="Items per page"),
    sort_by: SortField = Query(SortField.TIMESTAMP, description="Sort field"),
    sort_order: SortOrder = Query(SortOrder.DESC, description="Sort direction"),
    session: AsyncSession = Depends(get_async_session),
) -> AuditEventPage:
    """Paginated, filtered list of audit events."""
    filters = {
        "actor_id": actor_id,
        "action": action,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "risk_level": risk_level,
        "is_suspicious": is_suspicious,
        "status": status,
        "related_student_id": related_student_id,
        "ip_address": ip_address,
        "search": search,
        "start_date": start_date,
        "end_date": end_date,
    }
    pagination = {"page": page, "sort_by": sort_by, "sort_order": sort_order}
    if limit is not None:
        pagination["limit"] = limit

    try:
        return await AuditQueryService(session).query_events(filters, pagination)
    except AuditError as e:
        _raise_http(e, "list_events")


@router.get("/events/{event_id}", response_model=AuditEventDetail)
async def get_event(
    event_id: UUID,
    session: AsyncSession = Depends(get_async_session),
) -> AuditEventDetail:
    """Full record, including request headers and before/after values."""
    try:
        event = await AuditQueryService(session).get_event(event_id)
    except AuditError as e:
        _raise_http(e, "get_event")

    if event is None:
        raise HTTPException(status_code=404, detail=f"Audit event {event_id} not found")
    return event


@router.get("/actors/{actor_id}/events", response_model=list[AuditEventResponse])
async def get_actor_events(
    actor_id: str,
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    limit: int = Query(100, description="Maximum number of events"),
    session: AsyncSession = Depends(get_async_session),
) -> list[AuditEventResponse]:
    try:
        return await AuditQueryService(session).activity_for_actor(
            actor_id, start=start_date, end=end_date, limit=limit
        )
    except AuditError as e:
        _raise_http(e, "get_actor_events")


@router.get("/resources/{resource_type}/{resource_id}/events", response_model=list[AuditEventResponse])
async def get_resource_events(
    resource_type: ResourceType,
    resource_id: str,
    limit: int = Query(50, description="Maximum number of events"),
    session: AsyncSession = Depends(get_async_session),
) -> list[AuditEventResponse]:
    try:
        return await AuditQueryService(session).history_for_resource(
            resource_type, resource_id, limit=limit
        )
    except AuditError as e:
        _raise_http(e, "get_resource_events")


@router.get("/students/{student_id}/events", response_model=list[AuditEventResponse])
async def get_student_events(
    student_id: str,
    limit: int = Query(100, description="Maximum number of events"),
    session: AsyncSession = Depends(get_async_session),
) -> list[AuditEventResponse]:
    """Every event touching one student."""
    try:
        return await AuditQueryService(session).history_for_student(student_id, limit=limit)
    except AuditError as e:
        _raise_http(e, "get_student_events")


@router.get("/statistics", response_model=AuditStatistics)
async def get_statistics(
    window_days: int | None = Query(None, description="Window length in days"),
    session: AsyncSession = Depends(get_async_session),
) -> AuditStatistics:
    try:
        return await AuditAggregator(session).statistics(window_days)
    except AuditError as e:
        _raise_http(e, "get_statistics")


@router.get("/activity-summary", response_model=ActivitySummary)
async def get_activity_summary(
    window_days: int | None = Query(None, description="Window length in days"),
    session: AsyncSession = Depends(get_async_session),
) -> ActivitySummary:
    try:
        return await AuditAggregator(session).activity_summary(window_days)
    except AuditError as e:
        _raise_http(e, "get_activity_summary")


@router.get("/anomalies", response_model=AnomalySnapshot)
async def get_anomalies(
    session: AsyncSession = Depends(get_async_session),
) -> AnomalySnapshot:
    """Current anomaly report. Computed on demand, never stored."""
    try:
        return await AnomalyDetector(session).detect_anomalies()
    except AuditError as e:
        _raise_http(e, "get_anomalies")


@router.get("/suspicious", response_model=list[AuditEventResponse])
async def get_suspicious_activities(
    days: int = Query(7, description="Number of days to look back"),
    session: AsyncSession = Depends(get_async_session),
) -> list[AuditEventResponse]:
    try:
        return await AuditQueryService(session).suspicious_activities(days)
    except AuditError as e:
        _raise_http(e, "get_suspicious_activities")


@router.get("/retention", response_model=RetentionStatistics)
async def get_retention_statistics() -> RetentionStatistics:
    try:
        return await AuditRetentionService().retention_statistics()
    except AuditError as e:
        _raise_http(e, "get_retention_statistics")


__all__ = ["router"]
