"""
JWT access tokens.

Tokens are HS256-signed by default and carry the user id in the "sub" claim.
Issuing them is the job of the account service; this module exists so the
realtime handshake and HTTP dependencies can verify them, and so tests and
tooling can mint them.
"""

import uuid
from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from ..config.models import SecurityConfig
from ..exceptions import AuthenticationError
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise

logger = get_logger(__name__)


def create_access_token(
    user_id: uuid.UUID | str,
    security: SecurityConfig,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for user_id."""
    expire = datetime.now(UTC) + (expires_delta or timedelta(minutes=security.access_token_expire_minutes))
    claims = {"sub": str(user_id), "exp": expire}
    try:
        return jwt.encode(claims, security.jwt_secret, algorithm=security.jwt_algorithm)
    except JWTError as e:
        log_and_raise(
            AuthenticationError,
            f"Failed to create access token: {e}",
            details={"user_id": str(user_id)},
            user_friendly="Authentication token creation failed",
        )


def decode_access_token(token: str | None, security: SecurityConfig) -> uuid.UUID | None:
    """
    Verify a token and return the user id it names.

    Returns:
        The user id, or None for a missing, expired, tampered or malformed token
    """
    if not token:
        logger.debug("No token provided for decoding")
        return None

    try:
        payload = jwt.decode(token, security.jwt_secret, algorithms=[security.jwt_algorithm])
    except JWTError as e:
        logger.warning("JWT decode error", error=str(e), token_length=len(token))
        return None

    subject = payload.get("sub")
    if not subject:
        logger.warning("JWT missing subject claim")
        return None
    try:
        return uuid.UUID(str(subject))
    except ValueError:
        logger.warning("JWT subject is not a user id", token_length=len(token))
        return None
