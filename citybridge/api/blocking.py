"""
Block list endpoints.

The messaging policy refuses messages from blocked users, and blocking deletes
any connection between the pair.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends

from ..auth.dependencies import get_current_user
from ..dependencies import get_connection_repository, get_user_repository
from ..error_types import ErrorMessages
from ..exceptions import ConflictError, ResourceNotFoundError
from ..middleware.rate_limit import rate_limit
from ..models.user import User
from ..persistence.repositories import ConnectionRepository, UserRepository
from ..schemas.social import UserSummary
from ..utils.error_logging import log_and_raise

blocking_router = APIRouter(prefix="/api/blocking", tags=["blocking"], dependencies=[Depends(rate_limit("api"))])


@blocking_router.get("")
async def list_blocked(
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> list[dict[str, Any]]:
    return [UserSummary.model_validate(user).to_wire() for user in await users.list_blocked(current_user.id)]


@blocking_router.post("/{user_id}")
async def block_user(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    connections: ConnectionRepository = Depends(get_connection_repository),
) -> dict[str, str]:
    """Block user_id and drop any connection between the two users."""
    if user_id == current_user.id:
        log_and_raise(ConflictError, "Self block requested", user_friendly="Cannot block yourself")
    if await users.get_by_id(user_id) is None:
        log_and_raise(
            ResourceNotFoundError,
            "Block target does not exist",
            user_friendly=ErrorMessages.USER_NOT_FOUND,
            resource_type="user",
            resource_id=str(user_id),
        )
    await users.block(current_user.id, user_id)
    await connections.delete_between(current_user.id, user_id)
    return {"message": "User blocked"}


@blocking_router.delete("/{user_id}")
async def unblock_user(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
) -> dict[str, str]:
    if not await users.unblock(current_user.id, user_id):
        log_and_raise(
            ResourceNotFoundError,
            "Unblock target was not blocked",
            user_friendly="User is not blocked",
            resource_type="user_block",
            resource_id=str(user_id),
        )
    return {"message": "User unblocked"}
