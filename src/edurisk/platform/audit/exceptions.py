"""Audit-related exceptions."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

logger = structlog.get_logger(__name__)


class AuditError(Exception):
    """Base exception for audit operations."""

    pass


class AuditValidationError(AuditError):
    """Raised when an audit record is malformed or incomplete.

    ``errors`` holds one entry per offending field, in the shape pydantic
    reports them (``loc``, ``msg``, ``type``).
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    @property
    def fields(self) -> list[str]:
        return [".".join(str(part) for part in error.get("loc", ())) for error in self.errors]


class AuditPersistenceError(AuditError):
    """Raised when the audit store is unavailable or a read/write fails."""

    pass


class AuditQueryError(AuditError):
    """Raised when filter or pagination input is invalid."""

    pass


class AuditImmutableError(AuditError):
    """Raised when a stored audit record would be modified."""

    pass


class AuditConfigurationError(AuditError):
    """Raised when audit settings name values outside their closed sets."""

    pass


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Re-raise database and filesystem failures as ``AuditPersistenceError``."""
    try:
        yield
    except AuditError:
        raise
    except (SQLAlchemyError, OSError) as e:
        logger.error("audit.store.failed", operation=operation, error=str(e), exc_info=True)
        raise AuditPersistenceError(f"Audit store failure during {operation}: {e}") from e
