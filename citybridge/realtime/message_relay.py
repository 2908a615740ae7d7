"""
Direct message relay.

A send goes through three steps in a fixed order: policy check, persistence,
push. The push to the receiver happens only after the row is committed, so a
failed or skipped push never loses a message; the receiver sees it in
history. Any failure before the commit produces message_error for the sender
and leaves nothing behind.
"""

import uuid
from typing import Any

import pydantic

from ..error_types import ErrorMessages
from ..exceptions import CityBridgeError, DatabaseError, ValidationError
from ..models.message import MAX_MESSAGE_LENGTH, Message
from ..persistence.repositories.message_repository import MessageRepository
from ..schemas.message import MessageRead, SendMessageRequest
from ..services.messaging_policy import MessagingPolicy
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise
from .presence_registry import ConnectionHandle, PresenceRegistry

logger = get_logger(__name__)


def _validation_message(error: pydantic.ValidationError) -> str:
    first = error.errors()[0] if error.errors() else {}
    location = first.get("loc", ())
    if location and location[0] == "content":
        return ErrorMessages.EMPTY_MESSAGE
    if location and location[0] == "receiver":
        return ErrorMessages.RECEIVER_NOT_FOUND
    return ErrorMessages.INVALID_FRAME


class MessageRelay:
    def __init__(
        self,
        message_repository: MessageRepository,
        presence: PresenceRegistry,
        policy: MessagingPolicy,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ) -> None:
        self._messages = message_repository
        self._presence = presence
        self._policy = policy
        self._max_message_length = max_message_length

    async def send(self, sender_id: uuid.UUID, request: SendMessageRequest) -> Message:
        """
        Check policy and persist a message without pushing anything.

        Raises:
            ValidationError: If the content exceeds the configured maximum length
            ResourceNotFoundError, MessagingDeniedError: From the messaging policy
            DatabaseError: If the message could not be stored
        """
        if len(request.content) > self._max_message_length:
            log_and_raise(
                ValidationError,
                "Message content exceeds configured maximum",
                details={"length": len(request.content), "max_length": self._max_message_length},
                user_friendly=ErrorMessages.MESSAGE_TOO_LONG,
                field="content",
            )
        await self._policy.check_can_message(sender_id, request.receiver)
        return await self._messages.create(sender_id, request.receiver, request.content)

    async def deliver(self, message: Message) -> bool:
        """Push receive_message to the receiver if online; returns whether it was pushed."""
        pushed = await self._presence.send_to_user(
            message.receiver_id, "receive_message", MessageRead.model_validate(message).to_wire()
        )
        logger.debug("Message delivery attempted", message_id=message.id, receiver_online=pushed)
        return pushed

    async def handle_send_message(
        self,
        sender: ConnectionHandle,
        data: dict[str, Any],
        request_id: str | None = None,
    ) -> Message | None:
        """
        Handle a send_message frame from an authenticated connection.

        On success the receiver gets receive_message (if online) and the
        sending connection gets message_sent. On failure the sending connection
        alone gets message_error {error}.

        Returns:
            The stored message, or None if the send was refused or failed
        """
        try:
            request = SendMessageRequest.model_validate(data)
        except pydantic.ValidationError as e:
            await self._reject(sender, _validation_message(e), request_id)
            return None

        try:
            message = await self.send(sender.user_id, request)
        except DatabaseError:
            await self._reject(sender, ErrorMessages.SEND_FAILED, request_id)
            return None
        except CityBridgeError as e:
            await self._reject(sender, e.user_friendly, request_id)
            return None

        receiver_online = await self.deliver(message)
        await self._presence.send_to_connection(
            sender, "message_sent", MessageRead.model_validate(message).to_wire(), reply_to=request_id
        )

        logger.info(
            "Message relayed",
            message_id=message.id,
            sender_id=str(sender.user_id),
            receiver_id=str(message.receiver_id),
            receiver_online=receiver_online,
        )
        return message

    async def _reject(self, sender: ConnectionHandle, error: str, request_id: str | None) -> None:
        logger.info("Message send refused", sender_id=str(sender.user_id), reason=error)
        await self._presence.send_to_connection(sender, "message_error", {"error": error}, reply_to=request_id)
