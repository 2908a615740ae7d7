"""
Exception handlers for the FastAPI application.

Domain errors are mapped to HTTP status codes here so route handlers can
simply raise. Every body has the shape {"error": <message>, "type": <error
type>}; rate limit rejections return only {"error": <limiter message>}.
"""

from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..error_types import ErrorMessages, ErrorType, create_standard_error_response
from ..exceptions import (
    AuthenticationError,
    AuthorizationError,
    CityBridgeError,
    ConflictError,
    DatabaseError,
    MessagingDeniedError,
    RateLimitError,
    ResourceNotFoundError,
    ValidationError,
)
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once

logger = get_logger(__name__)

# Ordered most specific first; the first isinstance match wins
ERROR_STATUS_MAP: list[tuple[type[CityBridgeError], int, ErrorType]] = [
    (AuthenticationError, 401, ErrorType.AUTHENTICATION_FAILED),
    (AuthorizationError, 403, ErrorType.AUTHORIZATION_DENIED),
    (MessagingDeniedError, 403, ErrorType.MESSAGING_DENIED),
    (ResourceNotFoundError, 404, ErrorType.RESOURCE_NOT_FOUND),
    (ConflictError, 400, ErrorType.RESOURCE_CONFLICT),
    (ValidationError, 422, ErrorType.VALIDATION_ERROR),
    (DatabaseError, 500, ErrorType.DATABASE_ERROR),
]

HTTP_STATUS_ERROR_TYPES: dict[int, ErrorType] = {
    400: ErrorType.VALIDATION_ERROR,
    401: ErrorType.AUTHENTICATION_FAILED,
    403: ErrorType.AUTHORIZATION_DENIED,
    404: ErrorType.RESOURCE_NOT_FOUND,
    409: ErrorType.RESOURCE_CONFLICT,
    422: ErrorType.VALIDATION_ERROR,
    429: ErrorType.RATE_LIMIT_EXCEEDED,
}


def status_for_error(exc: CityBridgeError) -> tuple[int, ErrorType]:
    for error_class, status_code, error_type in ERROR_STATUS_MAP:
        if isinstance(exc, error_class):
            return status_code, error_type
    return 500, ErrorType.INTERNAL_ERROR


def _request_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    message = str(errors[0].get("msg", "Invalid request"))
    # pydantic prefixes messages raised from validators
    return message.removeprefix("Value error, ")


def register_error_handlers(app: FastAPI) -> None:
    """
    Register exception handlers for the application's error types.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(RateLimitError)
    async def rate_limit_error_handler(_request: Request, exc: RateLimitError) -> JSONResponse:
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return JSONResponse(status_code=429, content={"error": exc.user_friendly}, headers=headers)

    @app.exception_handler(CityBridgeError)
    async def citybridge_error_handler(request: Request, exc: CityBridgeError) -> JSONResponse:
        status_code, error_type = status_for_error(exc)
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        message = exc.user_friendly if status_code < 500 else _server_error_message(exc)
        logger.debug("Domain error mapped to HTTP response", path=request.url.path, status_code=status_code)
        return JSONResponse(
            status_code=status_code,
            content=create_standard_error_response(error_type, message),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details: dict[str, Any] = {
            "errors": [
                {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")} for err in exc.errors()
            ]
        }
        logger.info("Request validation failed", path=request.url.path, error_count=len(exc.errors()))
        return JSONResponse(
            status_code=422,
            content=create_standard_error_response(
                ErrorType.VALIDATION_ERROR, _request_validation_message(exc), details
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
        error_type = HTTP_STATUS_ERROR_TYPES.get(exc.status_code, ErrorType.INTERNAL_ERROR)
        return JSONResponse(
            status_code=exc.status_code,
            content=create_standard_error_response(error_type, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log_exception_once(logger, "error", "Unhandled exception", exc=exc, path=request.url.path, exc_info=True)
        return JSONResponse(
            status_code=500,
            content=create_standard_error_response(ErrorType.INTERNAL_ERROR, ErrorMessages.INTERNAL_ERROR),
        )

    logger.info("Error handlers registered for FastAPI application")


def _server_error_message(exc: CityBridgeError) -> str:
    # Server faults never leak technical messages
    if isinstance(exc, DatabaseError):
        return exc.user_friendly
    return ErrorMessages.INTERNAL_ERROR
