"""Repository modules for async persistence layer."""

from .connection_repository import ConnectionRepository
from .message_repository import ConversationRow, MessageRepository, MessageSlice
from .notification_repository import NotificationRepository
from .post_repository import PostRepository
from .user_repository import UserRepository

__all__ = [
    "ConnectionRepository",
    "ConversationRow",
    "MessageRepository",
    "MessageSlice",
    "NotificationRepository",
    "PostRepository",
    "UserRepository",
]
