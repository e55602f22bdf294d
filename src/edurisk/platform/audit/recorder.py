"""
Audit recorder: the write path of the audit trail.

Recording is best effort. ``AuditRecorder.record`` has a single error boundary
that logs and swallows every failure, so an audit problem can never break the
business operation that triggered it.
"""

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db import session_scope
from ..settings import settings
from . import mappers
from .exceptions import AuditValidationError, store_errors
from .middleware import actor_from_request, extract_request_context
from .models import AuditAction, AuditEvent, AuditEventCreate, build_event

logger = structlog.get_logger(__name__)


class AuditRecorder:
    """Validates, enriches and persists audit events."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory
        self._pending: set[asyncio.Task] = set()

    async def record(
        self,
        actor: Any,
        action: AuditAction | str,
        description: str,
        *,
        request: Any = None,
        **fields: Any,
    ) -> AuditEvent | None:
        """Record one audit event.

        Args:
            actor: ``ActorSnapshot``, mapping or user-like object. When ``None``
                the actor stored on ``request`` by the actor dependency is used.
            action: Action code.
            description: Human-readable summary.
            request: Optional HTTP request the context is extracted from.
            **fields: Any other ``AuditEventCreate`` field. Explicit values win
                over values extracted from ``request``.

        Returns:
            The persisted event, or ``None`` if recording is disabled or failed.
        """
        if not settings.audit.enabled:
            return None

        try:
            data = self._build(actor, action, description, request, fields)
            return await asyncio.wait_for(
                self._persist(data), timeout=settings.audit.write_timeout_seconds
            )
        except asyncio.CancelledError:
            raise
        except AuditValidationError as e:
            logger.warning(
                "audit.record.invalid",
                action=str(getattr(action, "value", action)),
                error=str(e),
                fields=e.fields,
            )
        except TimeoutError:
            logger.error(
                "audit.record.timeout",
                action=str(getattr(action, "value", action)),
                timeout_seconds=settings.audit.write_timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "audit.record.failed",
                action=str(getattr(action, "value", action)),
                error=str(e),
                exc_info=True,
            )
        return None

    def _build(
        self,
        actor: Any,
        action: Any,
        description: str,
        request: Any,
        fields: dict[str, Any],
    ) -> AuditEventCreate:
        if actor is None and request is not None:
            actor = actor_from_request(request)

        context = extract_request_context(request) if request is not None else {}
        explicit = {key: value for key, value in fields.items() if value is not None}
        return build_event(
            actor=actor,
            action=action,
            description=description,
            **{**context, **explicit},
        )

    async def _persist(self, data: AuditEventCreate) -> AuditEvent:
        with store_errors("record"):
            async with session_scope(factory=self._session_factory) as session:
                event = AuditEvent.from_create(data)
                session.add(event)
                try:
                    await session.commit()
                except BaseException:
                    await session.rollback()
                    raise

        logger.debug(
            "audit.record.written",
            event_id=str(event.id),
            action=event.action,
            actor_id=event.actor_id,
            risk_level=event.risk_level,
        )
        return event

    # ==========================================
    # Fire-and-forget
    # ==========================================

    def record_in_background(self, *args: Any, **kwargs: Any) -> asyncio.Task:
        """Schedule ``record()`` without awaiting it. Must run inside a loop."""
        task = asyncio.create_task(self.record(*args, **kwargs))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled background write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ==========================================
    # Per-domain wrappers
    # ==========================================

    async def _log(self, mapper: Callable[..., dict[str, Any]], *args: Any, **kwargs: Any) -> AuditEvent | None:
        try:
            fields = mapper(*args, **kwargs)
        except Exception as e:
            logger.error(
                "audit.record.mapping_failed",
                mapper=mapper.__name__,
                error=str(e),
                exc_info=True,
            )
            return None
        return await self.record(**fields)

    async def log_auth(
        self,
        user: Any,
        action: AuditAction | str,
        request: Any = None,
        extra: Mapping[str, Any] | None = None,
        *,
        attempted_identifier: str | None = None,
    ) -> AuditEvent | None:
        return await self._log(
            mappers.auth_event, user, action, request, extra,
            attempted_identifier=attempted_identifier,
        )

    async def log_student(self, user: Any, action: AuditAction | str, student: Any,
                          request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.student_event, user, action, student, request, extra)

    async def log_attendance(self, user: Any, action: AuditAction | str, attendance: Any,
                             request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.attendance_event, user, action, attendance, request, extra)

    async def log_grade(self, user: Any, action: AuditAction | str, grade: Any,
                        request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.grade_event, user, action, grade, request, extra)

    async def log_intervention(self, user: Any, action: AuditAction | str, intervention: Any,
                               request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.intervention_event, user, action, intervention, request, extra)

    async def log_session(self, user: Any, action: AuditAction | str, session: Any,
                          request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.session_event, user, action, session, request, extra)

    async def log_risk(self, user: Any, action: AuditAction | str, student: Any,
                       request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.risk_event, user, action, student, request, extra)

    async def log_document(self, user: Any, action: AuditAction | str, document: Any,
                           request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.document_event, user, action, document, request, extra)

    async def log_notification(self, user: Any, action: AuditAction | str, notification: Any,
                               request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.notification_event, user, action, notification, request, extra)

    async def log_report(self, user: Any, action: AuditAction | str, report: Any,
                         request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.report_event, user, action, report, request, extra)

    async def log_user(self, user: Any, action: AuditAction | str, target_user: Any,
                       request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.user_event, user, action, target_user, request, extra)

    async def log_system(self, user: Any, action: AuditAction | str,
                         request: Any = None, extra: Mapping[str, Any] | None = None) -> AuditEvent | None:
        return await self._log(mappers.system_event, user, action, request, extra)


_recorder: AuditRecorder | None = None


def get_audit_recorder() -> AuditRecorder:
    """Process-wide recorder bound to the global session factory."""
    global _recorder
    if _recorder is None:
        _recorder = AuditRecorder()
    return _recorder


__all__ = ["AuditRecorder", "get_audit_recorder"]
