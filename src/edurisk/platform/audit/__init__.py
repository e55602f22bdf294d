"""
Audit trail for the EduRisk platform.

Records who did what to which student, class or document, and answers
compliance questions about it: filtered queries, per-entity histories,
windowed statistics, anomaly scans and retention sweeps.

Usage Examples:

    # Record from a route handler; never raises
    from edurisk.platform.audit import AuditAction, get_audit_recorder

    recorder = get_audit_recorder()
    await recorder.log_student(
        current_user,
        AuditAction.STUDENT_VIEWED,
        student,
        request=request,
    )

    # Investigate
    from edurisk.platform.audit import AuditQueryService

    page = await AuditQueryService().query_events(
        {"actor_id": "teacher-42", "action": "STUDENT_EXPORTED"},
        {"page": 1, "limit": 20},
    )

    # Scan for credential stuffing and bulk reads
    from edurisk.platform.audit import AnomalyDetector

    snapshot = await AnomalyDetector().detect_anomalies()
"""

from .aggregator import AuditAggregator
from .anomaly import AnomalyDetector, check_anomaly_configuration
from .exceptions import (
    AuditConfigurationError,
    AuditError,
    AuditImmutableError,
    AuditPersistenceError,
    AuditQueryError,
    AuditValidationError,
)
from .middleware import (
    AuditContextMiddleware,
    create_audit_actor_dependency,
    extract_request_context,
)
from .models import (
    ActorRole,
    ActorSnapshot,
    AuditAction,
    AuditEvent,
    AuditEventCreate,
    AuditEventDetail,
    AuditEventPage,
    AuditEventResponse,
    AuditFilterParams,
    ComplianceType,
    EventStatus,
    PaginationParams,
    ResourceRef,
    ResourceType,
    RiskLevel,
    SortField,
    SortOrder,
    build_event,
)
from .query import AuditQueryService
from .recorder import AuditRecorder, get_audit_recorder
from .retention import (
    AuditRetentionService,
    RetentionSweeper,
    cleanup_audit_logs_task,
    is_retained,
)
from .router import router as audit_router
from .schemas import AnomalySnapshot, AuditStatistics

__all__ = [
    # Models and enums
    "ActorRole",
    "ActorSnapshot",
    "AuditAction",
    "AuditEvent",
    "AuditEventCreate",
    "AuditEventDetail",
    "AuditEventPage",
    "AuditEventResponse",
    "AuditFilterParams",
    "ComplianceType",
    "EventStatus",
    "PaginationParams",
    "ResourceRef",
    "ResourceType",
    "RiskLevel",
    "SortField",
    "SortOrder",
    "build_event",
    # Exceptions
    "AuditConfigurationError",
    "AuditError",
    "AuditImmutableError",
    "AuditPersistenceError",
    "AuditQueryError",
    "AuditValidationError",
    # Services
    "AuditRecorder",
    "get_audit_recorder",
    "AuditQueryService",
    "AuditAggregator",
    "AuditStatistics",
    "AnomalyDetector",
    "check_anomaly_configuration",
    "AnomalySnapshot",
    "AuditRetentionService",
    "RetentionSweeper",
    "cleanup_audit_logs_task",
    "is_retained",
    # Router
    "audit_router",
    # Middleware
    "AuditContextMiddleware",
    "create_audit_actor_dependency",
    "extract_request_context",
]
