"""
SQLAlchemy models for CityBridge.

Importing this package registers every table on the shared metadata.
"""

from .base import Base
from .connection import Connection, ConnectionStatus
from .message import MAX_MESSAGE_LENGTH, Message
from .notification import Notification, NotificationType
from .post import Comment, Post, PostLike, PostStatus
from .user import MessagingPrivacy, User, UserBlock, UserRole

__all__ = [
    "Base",
    "Comment",
    "Connection",
    "ConnectionStatus",
    "MAX_MESSAGE_LENGTH",
    "Message",
    "MessagingPrivacy",
    "Notification",
    "NotificationType",
    "Post",
    "PostLike",
    "PostStatus",
    "User",
    "UserBlock",
    "UserRole",
]
