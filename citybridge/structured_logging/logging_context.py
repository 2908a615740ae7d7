"""
Context management utilities for structured logging.

Binds request and connection scoped values (correlation id, user id,
connection id) into structlog contextvars so every log entry emitted while
handling a request carries them.
"""

import uuid
from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


def bind_request_context(
    correlation_id: str | None = None,
    user_id: str | None = None,
    connection_id: str | None = None,
    request_id: str | None = None,
    **kwargs: Any,
) -> None:
    """
    Bind request context to the current logging context.

    Args:
        correlation_id: Unique correlation ID for the request (generated when omitted)
        user_id: Authenticated user ID if available
        connection_id: Realtime connection ID if available
        request_id: Request ID if available
        **kwargs: Additional context variables
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())

    context_vars = {
        "correlation_id": correlation_id,
        "user_id": user_id,
        "connection_id": connection_id,
        "request_id": request_id,
        **kwargs,
    }

    bind_contextvars(**{k: v for k, v in context_vars.items() if v is not None})


def clear_request_context() -> None:
    """Clear the current request context from logging."""
    clear_contextvars()


def get_current_context() -> dict[str, Any]:
    """Get the current logging context."""
    try:
        return structlog.contextvars.get_contextvars()
    except (AttributeError, KeyError):
        return {}
