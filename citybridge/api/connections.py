"""
Friend connection API endpoints.

Requests and acceptances notify the other party through the notification
dispatcher, which pushes to them immediately when they are connected.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends

from ..auth.dependencies import get_current_user
from ..dependencies import get_connection_repository, get_notification_dispatcher, get_user_repository
from ..error_types import ErrorMessages
from ..exceptions import AuthorizationError, ConflictError, ResourceNotFoundError
from ..middleware.rate_limit import rate_limit
from ..models.connection import ConnectionStatus
from ..models.notification import NotificationType
from ..models.user import User
from ..persistence.repositories import ConnectionRepository, UserRepository
from ..realtime.notification_dispatcher import NotificationDispatcher, friend_accepted_text, friend_request_text
from ..schemas.social import ConnectionRead
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise, log_and_raise_http

logger = get_logger(__name__)

connections_router = APIRouter(
    prefix="/api/connections", tags=["connections"], dependencies=[Depends(rate_limit("api"))]
)

CONNECTION_ACTIONS = {"accept": ConnectionStatus.ACCEPTED, "reject": ConnectionStatus.REJECTED}


@connections_router.get("")
async def list_connections(
    status: ConnectionStatus | None = None,
    current_user: User = Depends(get_current_user),
    connections: ConnectionRepository = Depends(get_connection_repository),
) -> list[dict[str, Any]]:
    rows = await connections.list_for_user(current_user.id, status)
    return [ConnectionRead.model_validate(row).to_wire() for row in rows]


@connections_router.post("/request/{user_id}", status_code=201)
async def request_connection(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    connections: ConnectionRepository = Depends(get_connection_repository),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    """Send a friend request to user_id and notify them."""
    if user_id == current_user.id:
        log_and_raise(ConflictError, "Self connection requested", user_friendly="Cannot connect with yourself")

    if await users.get_by_id(user_id) is None:
        log_and_raise(
            ResourceNotFoundError,
            "Connection target does not exist",
            user_friendly=ErrorMessages.USER_NOT_FOUND,
            resource_type="user",
            resource_id=str(user_id),
        )

    connection = await connections.create_request(current_user.id, user_id)
    await dispatcher.dispatch(
        user_id,
        NotificationType.FRIEND_REQUEST,
        connection.id,
        friend_request_text(current_user.username),
        origin_user_id=current_user.id,
    )
    return ConnectionRead.model_validate(connection).to_wire()


@connections_router.put("/{connection_id}/{action}")
async def respond_to_connection(
    connection_id: int,
    action: str,
    current_user: User = Depends(get_current_user),
    connections: ConnectionRepository = Depends(get_connection_repository),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    """Accept or reject a pending request addressed to the caller."""
    new_status = CONNECTION_ACTIONS.get(action)
    if new_status is None:
        log_and_raise_http(400, "Invalid action")

    connection = await connections.get_by_id(connection_id)
    if connection is None:
        log_and_raise(
            ResourceNotFoundError,
            "Connection request does not exist",
            user_friendly=ErrorMessages.CONNECTION_NOT_FOUND,
            resource_type="connection",
            resource_id=str(connection_id),
        )

    if not connection.involves(current_user.id) or connection.requested_by == current_user.id:
        log_and_raise(
            AuthorizationError,
            "Only the addressee may answer a connection request",
            details={"connection_id": connection_id, "user_id": str(current_user.id)},
            user_friendly="Not authorized",
        )

    if connection.status != ConnectionStatus.PENDING:
        log_and_raise(
            ConflictError,
            "Connection request already answered",
            details={"connection_id": connection_id, "status": connection.status.value},
            user_friendly="Connection request is no longer pending",
        )

    # Concurrent answers race on the conditional update; only one wins
    updated = await connections.set_status(connection_id, new_status, expected=ConnectionStatus.PENDING)
    if updated is None:
        log_and_raise(
            ConflictError,
            "Connection request answered concurrently",
            details={"connection_id": connection_id},
            user_friendly="Connection request is no longer pending",
        )

    if new_status == ConnectionStatus.ACCEPTED:
        await dispatcher.dispatch(
            updated.requested_by,
            NotificationType.FRIEND_ACCEPTED,
            updated.id,
            friend_accepted_text(current_user.username),
            origin_user_id=current_user.id,
        )
    logger.info("Connection request answered", connection_id=connection_id, action=action)
    return ConnectionRead.model_validate(updated).to_wire()


@connections_router.delete("/{connection_id}")
async def delete_connection(
    connection_id: int,
    current_user: User = Depends(get_current_user),
    connections: ConnectionRepository = Depends(get_connection_repository),
) -> dict[str, str]:
    """Remove a connection in any status; either participant may do so."""
    connection = await connections.get_by_id(connection_id)
    if connection is None:
        log_and_raise(
            ResourceNotFoundError,
            "Connection does not exist",
            user_friendly="Connection not found",
            resource_type="connection",
            resource_id=str(connection_id),
        )

    if not connection.involves(current_user.id):
        log_and_raise(
            AuthorizationError,
            "Only a participant may remove a connection",
            details={"connection_id": connection_id, "user_id": str(current_user.id)},
            user_friendly="Not authorized",
        )

    await connections.delete(connection_id)
    logger.info("Connection deleted", connection_id=connection_id, user_id=str(current_user.id))
    return {"message": "Connection deleted"}
