"""
Per-domain mapping from business objects to audit record arguments.

Every function here is pure: it reads the domain object it is given and
returns the keyword arguments for ``AuditRecorder.record``. Domain objects can
be mappings or attribute objects; both snake_case and camelCase names are
accepted.
"""

from collections.abc import Mapping
from typing import Any

from .models import (
    ActorSnapshot,
    AuditAction,
    ComplianceType,
    ResourceType,
    RiskLevel,
)


def field_of(source: Any, *names: str, default: Any = None) -> Any:
    """First non-null value among ``names`` on a mapping or object."""
    if source is None:
        return default
    for name in names:
        if isinstance(source, Mapping):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value is not None:
            return value
    return default


def ref_id(value: Any) -> str | None:
    """Id of an embedded object, or the value itself when it is already an id."""
    if value is None:
        return None
    if isinstance(value, (str, int)):
        return str(value)
    nested = field_of(value, "id", "_id")
    return str(nested) if nested is not None else str(value)


def display_name(source: Any) -> str | None:
    name = field_of(source, "full_name", "fullName", "name")
    if name:
        return str(name)
    first = field_of(source, "first_name", "firstName")
    last = field_of(source, "last_name", "lastName")
    joined = " ".join(str(part) for part in (first, last) if part)
    return joined or None


def _code(action: AuditAction | str) -> str:
    return action.value if isinstance(action, AuditAction) else str(action)


def _describe(action: AuditAction | str, templates: dict[AuditAction, str], fallback: str) -> str:
    code = _code(action)
    try:
        return templates[AuditAction(code)]
    except (KeyError, ValueError):
        return fallback


def _merge(base: dict[str, Any], extra: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = {key: value for key, value in base.items() if value is not None}
    if extra:
        merged.update(extra)
    return merged


def auth_event(
    user: Any,
    action: AuditAction | str,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
    *,
    attempted_identifier: str | None = None,
) -> dict[str, Any]:
    """Login, logout, failed login and password events.

    A failed login usually has no authenticated user; the attempted account
    identifier is then recorded as the anonymous actor's email so that the
    credential-stuffing heuristic can report it.
    """
    templates = {
        AuditAction.LOGIN: "User logged in successfully",
        AuditAction.LOGOUT: "User logged out",
        AuditAction.LOGIN_FAILED: "Login attempt failed",
        AuditAction.PASSWORD_CHANGED: "User changed password",
        AuditAction.PASSWORD_RESET: "Password reset requested",
    }
    failed = _code(action) == AuditAction.LOGIN_FAILED.value
    actor = user if user is not None else ActorSnapshot.anonymous(attempted_identifier)

    metadata = dict(extra or {})
    if attempted_identifier:
        metadata.setdefault("attempted_identifier", attempted_identifier)

    return {
        "actor": actor,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.USER,
        "resource_id": ref_id(field_of(user, "id", "user_id", "_id")) if user is not None else None,
        "resource_name": display_name(user) if user is not None else attempted_identifier,
        "request": request,
        "metadata": metadata or None,
        "risk_level": RiskLevel.MEDIUM if failed else RiskLevel.LOW,
        "is_suspicious": failed,
        "suspicious_reason": "Failed login attempt" if failed else None,
        "status": "Failed" if failed else "Success",
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.PRIVACY,
    }


def student_event(
    user: Any,
    action: AuditAction | str,
    student: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    name = display_name(student) or "student"
    templates = {
        AuditAction.STUDENT_CREATED: f"Created new student: {name}",
        AuditAction.STUDENT_UPDATED: f"Updated student information: {name}",
        AuditAction.STUDENT_DELETED: f"Deleted student: {name}",
        AuditAction.STUDENT_VIEWED: f"Viewed student profile: {name}",
        AuditAction.STUDENT_IMPORTED: f"Imported student data: {name}",
        AuditAction.STUDENT_EXPORTED: f"Exported student data: {name}",
    }
    high_risk = _code(action) in (
        AuditAction.STUDENT_DELETED.value,
        AuditAction.STUDENT_EXPORTED.value,
    )
    student_id = ref_id(field_of(student, "id", "_id"))

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, f"{_code(action)}: {name}"),
        "resource_type": ResourceType.STUDENT,
        "resource_id": student_id,
        "resource_name": name,
        "related_student_id": student_id,
        "related_class_id": ref_id(field_of(student, "class_id", "class_", "class")),
        "request": request,
        "metadata": dict(extra) if extra else None,
        "risk_level": RiskLevel.HIGH if high_risk else RiskLevel.LOW,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.FERPA,
    }


def attendance_event(
    user: Any,
    action: AuditAction | str,
    attendance: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    student = field_of(attendance, "student")
    student_name = display_name(student) if student is not None and not isinstance(student, (str, int)) else None
    templates = {
        AuditAction.ATTENDANCE_MARKED: f"Marked attendance for {student_name or 'student'}",
        AuditAction.ATTENDANCE_UPDATED: f"Updated attendance for {student_name or 'student'}",
        AuditAction.ATTENDANCE_BULK_MARKED: "Bulk attendance marked for class",
    }

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.ATTENDANCE,
        "resource_id": ref_id(field_of(attendance, "id", "_id")),
        "resource_name": f"Attendance - {student_name or 'Unknown'}",
        "related_student_id": ref_id(student if student is not None else field_of(attendance, "student_id")),
        "related_class_id": ref_id(field_of(attendance, "class_id", "class_", "class")),
        "request": request,
        "metadata": _merge(
            {
                "date": field_of(attendance, "date"),
                "status": field_of(attendance, "status"),
            },
            extra,
        ),
        "risk_level": RiskLevel.LOW,
    }


def grade_event(
    user: Any,
    action: AuditAction | str,
    grade: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    templates = {
        AuditAction.GRADE_ADDED: "Added grade for student",
        AuditAction.GRADE_UPDATED: "Updated grade for student",
        AuditAction.GRADE_DELETED: "Deleted grade for student",
        AuditAction.GRADE_PUBLISHED: "Published grades for exam",
    }
    subject = field_of(grade, "subject")
    exam_name = field_of(grade, "exam_name", "examName")

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.GRADE,
        "resource_id": ref_id(field_of(grade, "id", "_id")),
        "resource_name": f"{subject} - {exam_name}",
        "related_student_id": ref_id(field_of(grade, "student", "student_id")),
        "related_class_id": ref_id(field_of(grade, "class_id", "class_", "class")),
        "request": request,
        "metadata": _merge(
            {
                "subject": subject,
                "exam_name": exam_name,
                "marks_obtained": field_of(grade, "marks_obtained", "marksObtained"),
                "max_marks": field_of(grade, "max_marks", "maxMarks"),
            },
            extra,
        ),
        "risk_level": RiskLevel.LOW,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.FERPA,
    }


def intervention_event(
    user: Any,
    action: AuditAction | str,
    intervention: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    title = field_of(intervention, "title", default="intervention")
    templates = {
        AuditAction.INTERVENTION_CREATED: f"Created intervention: {title}",
        AuditAction.INTERVENTION_UPDATED: f"Updated intervention: {title}",
        AuditAction.INTERVENTION_APPROVED: f"Approved intervention: {title}",
        AuditAction.INTERVENTION_REJECTED: f"Rejected intervention: {title}",
        AuditAction.INTERVENTION_COMPLETED: f"Completed intervention: {title}",
        AuditAction.INTERVENTION_CANCELLED: f"Cancelled intervention: {title}",
    }
    priority = field_of(intervention, "priority")

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.INTERVENTION,
        "resource_id": ref_id(field_of(intervention, "id", "_id")),
        "resource_name": title,
        "related_student_id": ref_id(field_of(intervention, "student", "student_id")),
        "request": request,
        "metadata": _merge(
            {
                "type": field_of(intervention, "type"),
                "priority": priority,
                "status": field_of(intervention, "status"),
            },
            extra,
        ),
        "risk_level": RiskLevel.HIGH if priority == "Urgent" else RiskLevel.MEDIUM,
    }


def session_event(
    user: Any,
    action: AuditAction | str,
    session: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Counseling session events (not login sessions)."""
    templates = {
        AuditAction.SESSION_SCHEDULED: "Scheduled counseling session",
        AuditAction.SESSION_CONDUCTED: "Conducted counseling session",
        AuditAction.SESSION_CANCELLED: "Cancelled counseling session",
        AuditAction.SESSION_RESCHEDULED: "Rescheduled counseling session",
    }
    number = field_of(session, "session_number", "sessionNumber")

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.SESSION,
        "resource_id": ref_id(field_of(session, "id", "_id")),
        "resource_name": f"Session #{number}" if number is not None else "Session",
        "related_student_id": ref_id(field_of(session, "student", "student_id")),
        "request": request,
        "metadata": _merge(
            {
                "session_type": field_of(session, "session_type", "sessionType"),
                "scheduled_date": field_of(session, "scheduled_date", "scheduledDate"),
                "status": field_of(session, "status"),
            },
            extra,
        ),
        "risk_level": RiskLevel.MEDIUM,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.PRIVACY,
    }


def risk_event(
    user: Any,
    action: AuditAction | str,
    student: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    name = display_name(student) or "student"
    templates = {
        AuditAction.RISK_CALCULATED: f"Risk assessment calculated for {name}",
        AuditAction.RISK_UPDATED: f"Risk level updated for {name}",
        AuditAction.RISK_VALIDATED: f"Risk assessment validated for {name}",
    }
    student_risk = field_of(student, "risk_level", "riskLevel")

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.RISK_FACTOR,
        "resource_name": f"Risk Assessment - {name}",
        "related_student_id": ref_id(field_of(student, "id", "_id")),
        "request": request,
        "metadata": _merge(
            {
                "risk_level": student_risk,
                "risk_score": field_of(student, "risk_score", "riskScore"),
            },
            extra,
        ),
        "risk_level": RiskLevel.HIGH if student_risk == "Critical" else RiskLevel.MEDIUM,
    }


def document_event(
    user: Any,
    action: AuditAction | str,
    document: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    title = field_of(document, "title", default="document")
    templates = {
        AuditAction.DOCUMENT_UPLOADED: f"Uploaded document: {title}",
        AuditAction.DOCUMENT_DOWNLOADED: f"Downloaded document: {title}",
        AuditAction.DOCUMENT_DELETED: f"Deleted document: {title}",
        AuditAction.DOCUMENT_VERIFIED: f"Verified document: {title}",
    }
    deleted = _code(action) == AuditAction.DOCUMENT_DELETED.value

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.DOCUMENT,
        "resource_id": ref_id(field_of(document, "id", "_id")),
        "resource_name": title,
        "related_student_id": ref_id(field_of(document, "related_student", "relatedStudent")),
        "request": request,
        "metadata": _merge(
            {
                "document_type": field_of(document, "document_type", "documentType"),
                "file_size": field_of(document, "file_size", "fileSize"),
                "mime_type": field_of(document, "mime_type", "mimeType"),
            },
            extra,
        ),
        "risk_level": RiskLevel.MEDIUM if deleted else RiskLevel.LOW,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.DATA_PROTECTION,
    }


def notification_event(
    user: Any,
    action: AuditAction | str,
    notification: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    title = field_of(notification, "title", default="notification")
    templates = {
        AuditAction.NOTIFICATION_SENT: f"Sent notification: {title}",
        AuditAction.NOTIFICATION_READ: f"Read notification: {title}",
    }

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.NOTIFICATION,
        "resource_id": ref_id(field_of(notification, "id", "_id")),
        "resource_name": title,
        "related_student_id": ref_id(field_of(notification, "related_student", "relatedStudent")),
        "request": request,
        "metadata": _merge(
            {
                "type": field_of(notification, "type"),
                "priority": field_of(notification, "priority"),
                "channels": field_of(notification, "channels"),
            },
            extra,
        ),
        "risk_level": RiskLevel.LOW,
    }


def report_event(
    user: Any,
    action: AuditAction | str,
    report: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    label = field_of(report, "title", "type", default="report")
    templates = {
        AuditAction.REPORT_GENERATED: f"Generated report: {label}",
        AuditAction.REPORT_DOWNLOADED: f"Downloaded report: {label}",
        AuditAction.REPORT_SHARED: f"Shared report: {label}",
    }

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.REPORT,
        "resource_id": ref_id(field_of(report, "id", "_id")),
        "resource_name": label,
        "request": request,
        "metadata": _merge(
            {
                "report_type": field_of(report, "type"),
                "format": field_of(report, "format"),
                "date_range": field_of(report, "date_range", "dateRange"),
            },
            extra,
        ),
        "risk_level": RiskLevel.MEDIUM,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.DATA_PROTECTION,
    }


def user_event(
    user: Any,
    action: AuditAction | str,
    target_user: Any,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """User management performed by ``user`` on ``target_user``."""
    name = display_name(target_user) or "user"
    templates = {
        AuditAction.USER_CREATED: f"Created new user: {name}",
        AuditAction.USER_UPDATED: f"Updated user: {name}",
        AuditAction.USER_DEACTIVATED: f"Deactivated user: {name}",
        AuditAction.USER_ACTIVATED: f"Activated user: {name}",
    }
    high_risk = _code(action) in (
        AuditAction.USER_CREATED.value,
        AuditAction.USER_DEACTIVATED.value,
    )

    return {
        "actor": user,
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.USER,
        "resource_id": ref_id(field_of(target_user, "id", "user_id", "_id")),
        "resource_name": name,
        "request": request,
        "metadata": _merge(
            {
                "target_user_role": field_of(target_user, "role"),
                "target_user_email": field_of(target_user, "email"),
            },
            extra,
        ),
        "risk_level": RiskLevel.HIGH if high_risk else RiskLevel.MEDIUM,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.PRIVACY,
    }


def system_event(
    user: Any,
    action: AuditAction | str,
    request: Any = None,
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Backups, restores, settings changes and bulk data import/export."""
    templates = {
        AuditAction.SYSTEM_BACKUP: "System backup initiated",
        AuditAction.SYSTEM_RESTORE: "System restore initiated",
        AuditAction.SETTINGS_UPDATED: "System settings updated",
        AuditAction.DATA_EXPORTED: "System data exported",
        AuditAction.DATA_IMPORTED: "System data imported",
    }
    critical = _code(action) in (
        AuditAction.SYSTEM_RESTORE.value,
        AuditAction.DATA_IMPORTED.value,
    )

    return {
        "actor": user if user is not None else ActorSnapshot.system(),
        "action": action,
        "description": _describe(action, templates, _code(action)),
        "resource_type": ResourceType.SYSTEM,
        "request": request,
        "metadata": dict(extra) if extra else None,
        "risk_level": RiskLevel.CRITICAL if critical else RiskLevel.HIGH,
        "is_compliance_relevant": True,
        "compliance_type": ComplianceType.DATA_PROTECTION,
    }


__all__ = [
    "attendance_event",
    "auth_event",
    "display_name",
    "document_event",
    "field_of",
    "grade_event",
    "intervention_event",
    "notification_event",
    "ref_id",
    "report_event",
    "risk_event",
    "session_event",
    "student_event",
    "system_event",
    "user_event",
]
