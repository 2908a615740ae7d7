"""
User and block-list models.

Only the fields the realtime core and its write paths consult are modelled:
identity, role, messaging privacy and activity timestamps.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, string_enum, utc_now


class UserRole(str, Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class MessagingPrivacy(str, Enum):
    OPEN = "open"
    FRIENDS_ONLY = "friendsOnly"


class User(Base):
    """An account that can connect, message and receive notifications."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(length=50), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(length=255), nullable=False, unique=True)
    role: Mapped[UserRole] = mapped_column(string_enum(UserRole), nullable=False, default=UserRole.USER)
    messaging_privacy: Mapped[MessagingPrivacy] = mapped_column(
        string_enum(MessagingPrivacy), nullable=False, default=MessagingPrivacy.OPEN
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utc_now)
    last_active: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utc_now)

    @property
    def is_moderator(self) -> bool:
        return self.role in (UserRole.MODERATOR, UserRole.ADMIN)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username!r}, role={self.role.value})>"


class UserBlock(Base):
    """blocker_id has blocked blocked_id; consulted before any direct message is stored."""

    __tablename__ = "user_blocks"
    __table_args__ = (UniqueConstraint("blocker_id", "blocked_id", name="uq_user_blocks_pair"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    blocker_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    blocked_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utc_now)
