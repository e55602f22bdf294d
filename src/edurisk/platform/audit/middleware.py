"""
Request context capture for audit logging.

``AuditContextMiddleware`` gives every request a request id, binds it into the
structlog context and exposes it on ``request.state``. ``extract_request_context``
turns a raw request into the fields an audit record stores.
"""

from typing import Any
from uuid import uuid4

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ..settings import settings
from .models import ActorSnapshot, RequestMethod

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
REDACTED = "[REDACTED]"


def _client_ip(request: Any, headers: Any) -> str:
    if settings.audit.trust_forwarded_for:
        forwarded = headers.get("x-forwarded-for") if headers is not None else None
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop

    client = getattr(request, "client", None)
    host = getattr(client, "host", None) if client is not None else None
    return host or "unknown"


def extract_request_context(request: Any) -> dict[str, Any]:
    """Extract ip, user agent, method, url, headers and request id.

    Works with Starlette/FastAPI requests and any object exposing ``client``,
    ``headers``, ``method`` and ``url``. Missing pieces are left out rather
    than failing; the ip falls back to ``"unknown"``.
    """
    if request is None:
        return {"ip_address": "unknown"}

    headers = getattr(request, "headers", None)
    context: dict[str, Any] = {"ip_address": _client_ip(request, headers)}

    if headers is not None:
        redact = set(settings.audit.redact_headers)
        context["request_headers"] = {
            str(name).lower(): (REDACTED if str(name).lower() in redact else str(value))
            for name, value in headers.items()
        }
        context["user_agent"] = headers.get("user-agent")

    method = getattr(request, "method", None)
    if isinstance(method, str) and method.upper() in RequestMethod.__members__:
        context["request_method"] = method.upper()

    url = getattr(request, "url", None)
    if url is not None:
        context["request_url"] = str(url)

    state = getattr(request, "state", None)
    request_id = getattr(state, "request_id", None) if state is not None else None
    if request_id is None and headers is not None:
        request_id = headers.get(REQUEST_ID_HEADER.lower())
    if request_id:
        context["request_id"] = str(request_id)

    return context


def actor_from_request(request: Any) -> ActorSnapshot | None:
    """Actor stored on the request by ``create_audit_actor_dependency``."""
    state = getattr(request, "state", None)
    actor = getattr(state, "audit_actor", None) if state is not None else None
    return actor if isinstance(actor, ActorSnapshot) else None


class AuditContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that adds audit context to requests.

    Reuses an inbound ``X-Request-ID`` or generates one, stores it on
    ``request.state`` and binds it into structlog context vars so operational
    logs and audit records written during the request share it.
    """

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        """Process request and set audit context."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def create_audit_actor_dependency(user_dependency: Any) -> Any:
    """
    Creates a dependency that records the authenticated user on the request.

    ``user_dependency`` is the host application's ``Depends(...)`` that yields
    the current user. The user is snapshotted once so every audit record
    written during the request carries the same actor.
    """

    async def audit_actor_wrapper(request: Request, user: Any = user_dependency) -> Any:
        """Snapshot the user and set it on request state."""
        if user is not None:
            try:
                request.state.audit_actor = ActorSnapshot.coerce(user)
            except ValueError as e:
                # Auditing must never reject an authenticated request
                logger.warning("audit.actor.snapshot_failed", error=str(e))
        return user

    return audit_actor_wrapper


__all__ = [
    "AuditContextMiddleware",
    "REQUEST_ID_HEADER",
    "actor_from_request",
    "create_audit_actor_dependency",
    "extract_request_context",
]
