"""Per-request ids kept in contextvars and added to every log line.

- request_id: one per HTTP request, taken from X-Request-ID when present
- user_id: the identity-provider user behind the bearer token
- correlation_id: ties log lines to one purchase; payment webhooks bind
  the purchase id they reconcile
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | UUID | None) -> None:
    """Set the correlation ID (e.g. the purchase id a webhook refers to)."""
    correlation_id_var.set(str(correlation_id) if correlation_id is not None else None)


def get_context() -> dict[str, Any]:
    """Non-empty ids, for the structlog context processor."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    return context


def clear_context() -> None:
    """Reset all context variables at the end of a request."""
    request_id_var.set("")
    user_id_var.set(None)
    correlation_id_var.set(None)
