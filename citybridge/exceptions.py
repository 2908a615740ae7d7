"""
Exception hierarchy for the CityBridge server.

Every domain error carries an ErrorContext and a user-friendly message, and
logs itself once on construction. The HTTP layer maps each class to a status
code in citybridge.middleware.error_handling_middleware.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """Contextual information attached to an error for logging and debugging."""

    user_id: str | None = None
    connection_id: str | None = None
    event_type: str | None = None
    request_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "user_id": self.user_id,
            "connection_id": self.connection_id,
            "event_type": self.event_type,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class CityBridgeError(Exception):
    """
    Base exception for all CityBridge errors.

    Subclasses set log_level to "warning" for expected client-side failures so
    that only server faults reach the error level.
    """

    log_level: str = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
        user_friendly: str | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
            user_friendly: Message safe to show to API clients (defaults to message)
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.user_friendly = user_friendly or message
        self.timestamp = datetime.now(UTC)

        self._log_error()

    def _log_error(self) -> None:
        log_method = getattr(logger, self.log_level, logger.error)
        log_method(
            "CityBridge error occurred",
            error_type=self.__class__.__name__,
            error_message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )
        self._already_logged = True

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "user_friendly": self.user_friendly,
            "context": self.context.to_dict(),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class AuthenticationError(CityBridgeError):
    """Missing, malformed or expired credentials."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, auth_type: str = "bearer", **kwargs):
        super().__init__(message, context, **kwargs)
        self.auth_type = auth_type
        self.details["auth_type"] = auth_type


class AuthorizationError(CityBridgeError):
    """Authenticated caller lacks the role or ownership an action needs."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, required_role: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.required_role = required_role
        if required_role:
            self.details["required_role"] = required_role


class ValidationError(CityBridgeError):
    """Data validation errors."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        field: str | None = None,
        value: Any | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.field = field
        self.value = value
        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)[:100]


class DatabaseError(CityBridgeError):
    """Database operation errors."""

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        operation: str = "unknown",
        table: str | None = None,
        **kwargs,
    ):
        if not kwargs.get("user_friendly"):
            kwargs["user_friendly"] = "A storage error occurred"
        super().__init__(message, context, **kwargs)
        self.operation = operation
        self.table = table
        self.details["operation"] = operation
        if table:
            self.details["table"] = table


class ResourceNotFoundError(CityBridgeError):
    """Resource not found errors."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id
        if resource_type:
            self.details["resource_type"] = resource_type
        if resource_id:
            self.details["resource_id"] = resource_id


class ConflictError(CityBridgeError):
    """The request conflicts with existing state (duplicate request, self-action)."""

    log_level = "warning"


class MessagingDeniedError(CityBridgeError):
    """The receiver's block list or privacy setting forbids this sender."""

    log_level = "warning"

    def __init__(self, message: str, context: ErrorContext | None = None, reason: str = "unknown", **kwargs):
        super().__init__(message, context, **kwargs)
        self.reason = reason
        self.details["reason"] = reason


class RateLimitError(CityBridgeError):
    """Rate limiting errors."""

    log_level = "warning"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        limit_type: str = "unknown",
        retry_after: int | None = None,
        **kwargs,
    ):
        super().__init__(message, context, **kwargs)
        self.limit_type = limit_type
        self.retry_after = retry_after
        self.details["limit_type"] = limit_type
        if retry_after:
            self.details["retry_after"] = retry_after


class LoggedHTTPException(HTTPException):
    """HTTPException that logs itself with context when raised."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        context: ErrorContext | None = None,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.context = context or ErrorContext()
        log_method = logger.error if status_code >= 500 else logger.warning
        log_method(
            "HTTP error raised",
            status_code=status_code,
            detail=detail,
            context=self.context.to_dict(),
        )
        self._already_logged = True


def create_error_context(**kwargs) -> ErrorContext:
    """
    Create an error context with the given parameters.

    Args:
        **kwargs: Context parameters

    Returns:
        ErrorContext object
    """
    return ErrorContext(**kwargs)
