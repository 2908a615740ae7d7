"""
FastAPI dependencies resolving the bearer token to a user.

    @router.get("/notifications")
    async def list_notifications(current_user: User = Depends(get_current_user)): ...
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from structlog.contextvars import bind_contextvars

from ..error_types import ErrorMessages
from ..exceptions import AuthenticationError, AuthorizationError
from ..models.user import User
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise
from .tokens import decode_access_token

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    """
    Resolve the request's bearer token to an existing user.

    Raises:
        AuthenticationError: Missing or invalid token, or the user no longer exists (HTTP 401)
    """
    if credentials is None:
        log_and_raise(
            AuthenticationError, "No bearer token provided", user_friendly=ErrorMessages.AUTHENTICATION_REQUIRED
        )

    container = request.app.state.container
    user_id = decode_access_token(credentials.credentials, container.config.security)
    if user_id is None:
        log_and_raise(AuthenticationError, "Bearer token rejected", user_friendly=ErrorMessages.INVALID_TOKEN)

    user = await container.user_repository.get_by_id(user_id)
    if user is None:
        log_and_raise(
            AuthenticationError,
            "Bearer token names an unknown user",
            details={"user_id": str(user_id)},
            user_friendly=ErrorMessages.INVALID_TOKEN,
        )

    # Keeps the correlation id bound by CorrelationMiddleware
    bind_contextvars(user_id=str(user.id))
    return user


async def require_moderator(current_user: User = Depends(get_current_user)) -> User:
    """
    Require the moderator or admin role.

    Raises:
        AuthorizationError: For any other role (HTTP 403)
    """
    if not current_user.is_moderator:
        log_and_raise(
            AuthorizationError,
            "Moderator role required",
            details={"user_id": str(current_user.id), "role": current_user.role.value},
            user_friendly=ErrorMessages.MODERATOR_REQUIRED,
            required_role="moderator",
        )
    return current_user
