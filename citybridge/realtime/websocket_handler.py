"""
WebSocket session handling for CityBridge.

handle_websocket_connection runs one realtime session from handshake to
disconnect: authenticate, open, read frames and route them by event_type,
then close. RealtimeEventRouter holds the per-event handlers.
"""

import json
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import pydantic
from fastapi import WebSocket, WebSocketDisconnect

from ..error_types import ErrorMessages, ErrorType, create_websocket_error_response
from ..structured_logging.enhanced_logging_config import bind_request_context, clear_request_context, get_logger
from .connection_lifecycle import ConnectionLifecycleHandler
from .envelope import ClientFrame
from .message_relay import MessageRelay
from .presence_registry import ConnectionHandle, PresenceRegistry
from .typing_relay import TypingRelay

logger = get_logger(__name__)

EventHandler = Callable[[ConnectionHandle, dict[str, Any], str | None], Awaitable[None]]


class RealtimeEventRouter:
    """Maps client event types to handler coroutines."""

    def __init__(self, presence: PresenceRegistry, message_relay: MessageRelay, typing_relay: TypingRelay) -> None:
        self._presence = presence
        self._handlers: dict[str, EventHandler] = {}

        async def send_message(handle: ConnectionHandle, data: dict[str, Any], request_id: str | None) -> None:
            await message_relay.handle_send_message(handle, data, request_id)

        async def typing(handle: ConnectionHandle, data: dict[str, Any], _request_id: str | None) -> None:
            await typing_relay.handle_typing(handle, data)

        async def stop_typing(handle: ConnectionHandle, data: dict[str, Any], _request_id: str | None) -> None:
            await typing_relay.handle_stop_typing(handle, data)

        self.register("send_message", send_message)
        self.register("typing", typing)
        self.register("stop_typing", stop_typing)
        self.register("check_user_status", self._check_user_status)

    def register(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type] = handler

    def supported_events(self) -> list[str]:
        return sorted(self._handlers)

    async def _check_user_status(self, handle: ConnectionHandle, data: dict[str, Any], request_id: str | None) -> None:
        """Answer {isOnline} for data.userId, correlated to the request by reply_to."""
        raw_user_id = data.get("userId")
        is_online = False
        if raw_user_id is not None:
            try:
                is_online = self._presence.is_online(_as_uuid(raw_user_id))
            except ValueError:
                logger.debug("check_user_status with malformed userId", user_id=str(handle.user_id))
        await self._presence.send_to_connection(
            handle, "check_user_status", {"userId": raw_user_id, "isOnline": is_online}, reply_to=request_id
        )

    async def dispatch(self, handle: ConnectionHandle, frame: ClientFrame) -> None:
        handler = self._handlers.get(frame.event_type)
        if handler is None:
            logger.info("Unknown realtime event", event_type=frame.event_type, user_id=str(handle.user_id))
            await self._presence.send_to_connection(
                handle,
                "error",
                create_websocket_error_response(
                    ErrorType.UNKNOWN_EVENT, ErrorMessages.UNKNOWN_EVENT, {"event_type": frame.event_type}
                ),
                reply_to=frame.request_id,
            )
            return
        await handler(handle, frame.data, frame.request_id)


def _as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


async def _send_frame_error(presence: PresenceRegistry, handle: ConnectionHandle, detail: str) -> None:
    await presence.send_to_connection(
        handle,
        "error",
        create_websocket_error_response(ErrorType.INVALID_FORMAT, ErrorMessages.INVALID_FRAME, {"reason": detail}),
    )


async def _message_loop(
    websocket: WebSocket,
    handle: ConnectionHandle,
    presence: PresenceRegistry,
    router: RealtimeEventRouter,
) -> None:
    while True:
        try:
            message = await websocket.receive()
        except WebSocketDisconnect as e:
            logger.info("WebSocket disconnected", user_id=str(handle.user_id), close_code=e.code)
            return
        if message["type"] == "websocket.disconnect":
            logger.info("WebSocket disconnected", user_id=str(handle.user_id), close_code=message.get("code"))
            return

        presence.mark_seen(handle.user_id)

        raw = message.get("text")
        if raw is None:
            logger.warning("Binary frame from client", user_id=str(handle.user_id))
            await _send_frame_error(presence, handle, "invalid_frame")
            continue

        try:
            frame = ClientFrame.model_validate(json.loads(raw))
        except json.JSONDecodeError:
            logger.warning("Invalid JSON from client", user_id=str(handle.user_id))
            await _send_frame_error(presence, handle, "invalid_json")
            continue
        except pydantic.ValidationError as e:
            logger.warning("Malformed realtime frame", user_id=str(handle.user_id), errors=e.error_count())
            await _send_frame_error(presence, handle, "invalid_frame")
            continue

        try:
            await router.dispatch(handle, frame)
        except Exception as e:  # pylint: disable=broad-exception-caught
            # One bad event must not end the session
            logger.error(
                "Error handling realtime event",
                event_type=frame.event_type,
                user_id=str(handle.user_id),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            await presence.send_to_connection(
                handle,
                "error",
                create_websocket_error_response(ErrorType.MESSAGE_PROCESSING_ERROR, ErrorMessages.INTERNAL_ERROR),
                reply_to=frame.request_id,
            )


async def handle_websocket_connection(
    websocket: WebSocket,
    lifecycle: ConnectionLifecycleHandler,
    presence: PresenceRegistry,
    router: RealtimeEventRouter,
) -> None:
    """
    Run one realtime session.

    Args:
        websocket: The not yet accepted WebSocket
        lifecycle: Handshake authentication and presence announcements
        presence: Registry used for pushes
        router: Event handlers for inbound frames
    """
    user_id = await lifecycle.authenticate(websocket)
    if user_id is None:
        await lifecycle.reject(websocket)
        return

    handle = await lifecycle.open(websocket, user_id)
    bind_request_context(user_id=str(user_id), connection_id=handle.connection_id, connection_type="websocket")
    try:
        await _message_loop(websocket, handle, presence, router)
    finally:
        await lifecycle.close(handle)
        clear_request_context()
