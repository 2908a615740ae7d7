"""
Realtime connection lifecycle.

Authenticates the WebSocket handshake, registers the connection in the
presence registry and announces it, then reverses both on disconnect.
Handshakes without a valid bearer token are closed before accept, so no
event handling ever starts for them.
"""

import uuid

from fastapi import WebSocket

from ..auth.tokens import decode_access_token
from ..config.models import SecurityConfig
from ..exceptions import CityBridgeError
from ..persistence.repositories.notification_repository import NotificationRepository
from ..persistence.repositories.user_repository import UserRepository
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from .presence_registry import ConnectionHandle, PresenceRegistry

logger = get_logger(__name__)

BEARER_SUBPROTOCOL = "bearer"
POLICY_VIOLATION_CLOSE_CODE = 1008


def extract_bearer_token(websocket: WebSocket) -> tuple[str | None, bool]:
    """
    Find the bearer token offered during the handshake.

    Checked in order: the Sec-WebSocket-Protocol header ("bearer, <token>"),
    the Authorization header ("Bearer <token>"), then the token query parameter.

    Returns:
        (token or None, whether the client offered the "bearer" subprotocol)
    """
    subprotocol_header = websocket.headers.get("sec-websocket-protocol")
    if subprotocol_header:
        parts = [p.strip() for p in subprotocol_header.split(",") if p.strip()]
        if BEARER_SUBPROTOCOL in [p.lower() for p in parts]:
            candidates = [p for p in parts if p.lower() != BEARER_SUBPROTOCOL]
            if candidates:
                return candidates[0], True

    authorization = websocket.headers.get("authorization")
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip(), False

    return websocket.query_params.get("token"), False


class ConnectionLifecycleHandler:
    def __init__(
        self,
        presence: PresenceRegistry,
        security: SecurityConfig,
        user_repository: UserRepository,
        notification_repository: NotificationRepository,
    ) -> None:
        self._presence = presence
        self._security = security
        self._users = user_repository
        self._notifications = notification_repository

    async def authenticate(self, websocket: WebSocket) -> uuid.UUID | None:
        """Return the verified user id for the handshake, or None to refuse it."""
        token, _ = extract_bearer_token(websocket)
        user_id = decode_access_token(token, self._security)
        if user_id is None:
            return None
        try:
            user = await self._users.get_by_id(user_id)
        except CityBridgeError as e:
            log_exception_once(logger, "warning", "User lookup failed during handshake", exc=e, user_id=str(user_id))
            return None
        if user is None:
            logger.warning("Handshake token names an unknown user", user_id=str(user_id))
            return None
        return user_id

    async def reject(self, websocket: WebSocket, reason: str = "Authentication error") -> None:
        """Refuse the handshake without accepting it."""
        client = websocket.client.host if websocket.client else "unknown"
        logger.info("Realtime handshake rejected", reason=reason, remote_addr=client)
        await websocket.close(code=POLICY_VIOLATION_CLOSE_CODE, reason=reason)

    async def open(self, websocket: WebSocket, user_id: uuid.UUID) -> ConnectionHandle:
        """
        Accept an authenticated connection and bring the user online.

        Registers presence, sends connected {userId}, broadcasts user_online
        {userId} to every other connection and pushes unread_notifications
        {count}.
        """
        _, offered_subprotocol = extract_bearer_token(websocket)
        await websocket.accept(subprotocol=BEARER_SUBPROTOCOL if offered_subprotocol else None)

        handle = ConnectionHandle(user_id=user_id, websocket=websocket)
        self._presence.register(handle)
        logger.info("Realtime connection opened", user_id=str(user_id), connection_id=handle.connection_id)

        user_payload = {"userId": str(user_id)}
        await self._presence.send_to_connection(handle, "connected", user_payload)
        await self._presence.broadcast("user_online", user_payload, exclude_user_id=user_id)
        await self._push_unread_count(handle)

        try:
            await self._users.touch_last_active(user_id)
        except CityBridgeError as e:
            log_exception_once(logger, "warning", "Could not record last activity", exc=e, user_id=str(user_id))

        return handle

    async def _push_unread_count(self, handle: ConnectionHandle) -> None:
        try:
            count = await self._notifications.count_unread(handle.user_id)
        except CityBridgeError as e:
            log_exception_once(
                logger, "warning", "Unread notification count unavailable", exc=e, user_id=str(handle.user_id)
            )
            return
        await self._presence.send_to_connection(handle, "unread_notifications", {"count": count})

    async def close(self, handle: ConnectionHandle) -> bool:
        """
        Deregister a finished connection.

        user_offline is broadcast only when this connection was still the
        user's current one; closing a superseded connection changes nothing.

        Returns:
            True if the user went offline
        """
        went_offline = self._presence.unregister(handle)
        if went_offline:
            await self._presence.broadcast(
                "user_offline", {"userId": str(handle.user_id)}, exclude_user_id=handle.user_id
            )
        logger.info(
            "Realtime connection closed",
            user_id=str(handle.user_id),
            connection_id=handle.connection_id,
            went_offline=went_offline,
        )
        return went_offline
