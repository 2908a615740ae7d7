"""Notification model and its closed set of types."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, string_enum, utc_now


class NotificationType(str, Enum):
    FRIEND_REQUEST = "friendRequest"
    FRIEND_ACCEPTED = "friendAccepted"
    MESSAGE = "message"
    POST_APPROVED = "postApproved"
    POST_REJECTED = "postRejected"
    POST_LIKED = "postLiked"
    POST_COMMENTED = "postCommented"
    COMMENT_REPLIED = "commentReplied"


class Notification(Base):
    """A persisted notice for user_id; never created with user_id == from_user_id."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_read", "user_id", "read"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[NotificationType] = mapped_column(string_enum(NotificationType), nullable=False)
    related_id: Mapped[str] = mapped_column(String(length=64), nullable=False)
    from_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(String(length=500), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utc_now)
