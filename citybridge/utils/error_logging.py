"""
Helpers for logging an error and raising it in one step.

Usage:
    log_and_raise(
        DatabaseError,
        f"Database error saving message: {e}",
        operation="create_message",
        details={"sender_id": str(sender_id)},
    )
"""

from typing import Any, NoReturn

from ..exceptions import CityBridgeError, ErrorContext, LoggedHTTPException, create_error_context
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def log_and_raise(
    exception_class: type[CityBridgeError],
    message: str,
    context: ErrorContext | None = None,
    details: dict[str, Any] | None = None,
    user_friendly: str | None = None,
    **kwargs: Any,
) -> NoReturn:
    """
    Build a CityBridge exception with context and raise it.

    The exception logs itself on construction, so callers should not log the
    same failure again.

    Args:
        exception_class: The CityBridgeError subclass to raise
        message: Technical error message
        context: Error context information
        details: Additional error details
        user_friendly: User-friendly error message
        **kwargs: Subclass-specific keyword arguments (operation, field, resource_type, ...)

    Raises:
        The specified CityBridge exception
    """
    if context is None:
        context = create_error_context()
    raise exception_class(message, context, details=details, user_friendly=user_friendly, **kwargs)


def log_and_raise_http(
    status_code: int,
    detail: str,
    context: ErrorContext | None = None,
) -> NoReturn:
    """
    Log an HTTP error and raise a LoggedHTTPException.

    Args:
        status_code: HTTP status code
        detail: Error detail message
        context: Error context information

    Raises:
        LoggedHTTPException with the specified status code and detail
    """
    raise LoggedHTTPException(status_code=status_code, detail=detail, context=context or create_error_context())
