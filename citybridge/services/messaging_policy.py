"""
Pre-send checks shared by every direct message path.

Both the realtime relay and POST /api/messages call check_can_message before
storing anything, so block lists and privacy settings apply the same way no
matter how a message is sent.
"""

import uuid

from ..error_types import ErrorMessages
from ..exceptions import ErrorContext, MessagingDeniedError, ResourceNotFoundError
from ..models.user import MessagingPrivacy, User
from ..persistence.repositories.connection_repository import ConnectionRepository
from ..persistence.repositories.user_repository import UserRepository
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise

logger = get_logger(__name__)


class MessagingPolicy:
    def __init__(self, user_repository: UserRepository, connection_repository: ConnectionRepository) -> None:
        self._users = user_repository
        self._connections = connection_repository

    async def check_can_message(self, sender_id: uuid.UUID, receiver_id: uuid.UUID) -> User:
        """
        Verify sender_id may message receiver_id.

        Returns:
            The receiver

        Raises:
            ResourceNotFoundError: The receiver does not exist
            MessagingDeniedError: The receiver blocked the sender, or only accepts
                messages from accepted connections and the sender is not one
        """
        context = ErrorContext(user_id=str(sender_id), metadata={"receiver_id": str(receiver_id)})

        receiver = await self._users.get_by_id(receiver_id)
        if receiver is None:
            log_and_raise(
                ResourceNotFoundError,
                f"Receiver {receiver_id} not found",
                context=context,
                resource_type="user",
                resource_id=str(receiver_id),
                user_friendly=ErrorMessages.RECEIVER_NOT_FOUND,
            )

        if await self._users.is_blocked(receiver_id, sender_id):
            log_and_raise(
                MessagingDeniedError,
                "Sender is blocked by receiver",
                context=context,
                reason="blocked",
                user_friendly=ErrorMessages.BLOCKED,
            )

        if receiver.messaging_privacy == MessagingPrivacy.FRIENDS_ONLY:
            if not await self._connections.are_connected(sender_id, receiver_id):
                log_and_raise(
                    MessagingDeniedError,
                    "Receiver only accepts messages from connections",
                    context=context,
                    reason="friends_only",
                    user_friendly=ErrorMessages.FRIENDS_ONLY,
                )

        return receiver
