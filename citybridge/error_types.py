"""
Centralized error types and response builders.

HTTP and realtime error payloads are built here so both transports describe
failures with the same vocabulary.
"""

from enum import Enum
from typing import Any


class ErrorType(Enum):
    """Standardized error types for consistent categorization."""

    # Authentication and Authorization
    AUTHENTICATION_FAILED = "authentication_failed"
    AUTHORIZATION_DENIED = "authorization_denied"
    INVALID_TOKEN = "invalid_token"

    # Validation Errors
    VALIDATION_ERROR = "validation_error"
    INVALID_FORMAT = "invalid_format"

    # Resource Errors
    RESOURCE_NOT_FOUND = "resource_not_found"
    RESOURCE_CONFLICT = "resource_conflict"

    # Messaging
    MESSAGING_DENIED = "messaging_denied"

    # Database Errors
    DATABASE_ERROR = "database_error"

    # Rate Limiting
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"

    # System
    INTERNAL_ERROR = "internal_error"

    # Real-time Communication
    UNKNOWN_EVENT = "unknown_event"
    MESSAGE_PROCESSING_ERROR = "message_processing_error"


class ErrorMessages:
    """Common error messages for consistent user experience."""

    AUTHENTICATION_REQUIRED = "Authentication required"
    INVALID_TOKEN = "Invalid or expired token"
    MODERATOR_REQUIRED = "Moderator access required"

    RECEIVER_NOT_FOUND = "Receiver not found"
    USER_NOT_FOUND = "User not found"
    POST_NOT_FOUND = "Post not found"
    NOTIFICATION_NOT_FOUND = "Notification not found"
    CONNECTION_NOT_FOUND = "Connection request not found"

    BLOCKED = "Cannot send message to this user"
    FRIENDS_ONLY = "User only accepts messages from friends"

    EMPTY_MESSAGE = "Message content is required"
    MESSAGE_TOO_LONG = "Message content is too long"

    INTERNAL_ERROR = "An internal error occurred"
    SEND_FAILED = "Failed to send message"
    INVALID_FRAME = "Invalid message format"
    UNKNOWN_EVENT = "Unknown event type"


def create_standard_error_response(
    error_type: ErrorType,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create the JSON body returned for failed HTTP requests.

    Args:
        error_type: The type of error
        message: User-friendly error message
        details: Additional error details (omitted when empty)

    Returns:
        Response body with "error" and "type" keys
    """
    body: dict[str, Any] = {"error": message, "type": error_type.value}
    if details:
        body["details"] = details
    return body


def create_websocket_error_response(
    error_type: ErrorType,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Create the data payload of a realtime "error" event.

    Args:
        error_type: The type of error
        message: User-friendly error message
        details: Additional error details (optional)

    Returns:
        Event data dictionary
    """
    return {
        "error": message,
        "error_type": error_type.value,
        "details": details or {},
    }
