"""Notification repository for async persistence."""

import uuid

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from ...database import Database
from ...exceptions import DatabaseError
from ...models.notification import Notification, NotificationType
from ...structured_logging.enhanced_logging_config import get_logger
from ...utils.error_logging import log_and_raise

logger = get_logger(__name__)


class NotificationRepository:
    """
    Repository for the notifications table.

    Writes go through NotificationDispatcher; the HTTP routes use the read,
    mark and delete methods directly. Every mutating method is scoped to the
    owning user so one user cannot touch another's notifications.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def create(
        self,
        user_id: uuid.UUID,
        notification_type: NotificationType,
        related_id: str,
        content: str,
        from_user_id: uuid.UUID | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=notification_type,
            related_id=related_id,
            content=content,
            from_user_id=from_user_id,
        )
        try:
            async with self._database.session() as session:
                session.add(notification)
                await session.commit()
                await session.refresh(notification)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error saving notification: {e}",
                operation="create",
                table="notifications",
                details={"user_id": str(user_id), "type": notification_type.value},
            )
        return notification

    async def list_for_user(self, user_id: uuid.UUID, limit: int = 50) -> list[Notification]:
        """Newest first, capped at limit."""
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(Notification)
                    .where(Notification.user_id == user_id)
                    .order_by(Notification.created_at.desc(), Notification.id.desc())
                    .limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error listing notifications: {e}",
                operation="list_for_user",
                table="notifications",
                details={"user_id": str(user_id)},
                user_friendly="Failed to get notifications",
            )

    async def mark_read(self, notification_id: int, user_id: uuid.UUID) -> Notification | None:
        """Mark one notification read; None when it does not exist or belongs to someone else."""
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
                )
                notification = result.scalars().first()
                if notification is None:
                    return None
                notification.read = True
                await session.commit()
                await session.refresh(notification)
                return notification
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error marking notification read: {e}",
                operation="mark_read",
                table="notifications",
                details={"notification_id": notification_id, "user_id": str(user_id)},
                user_friendly="Failed to mark notification as read",
            )

    async def mark_all_read(self, user_id: uuid.UUID) -> int:
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    update(Notification)
                    .where(Notification.user_id == user_id, Notification.read.is_(False))
                    .values(read=True)
                )
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error marking all notifications read: {e}",
                operation="mark_all_read",
                table="notifications",
                details={"user_id": str(user_id)},
                user_friendly="Failed to mark all as read",
            )

    async def delete(self, notification_id: int, user_id: uuid.UUID) -> bool:
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    delete(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
                )
                await session.commit()
                return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error deleting notification: {e}",
                operation="delete",
                table="notifications",
                details={"notification_id": notification_id, "user_id": str(user_id)},
                user_friendly="Failed to delete notification",
            )

    async def count_unread(self, user_id: uuid.UUID) -> int:
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(func.count(Notification.id)).where(
                        Notification.user_id == user_id, Notification.read.is_(False)
                    )
                )
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error counting unread notifications: {e}",
                operation="count_unread",
                table="notifications",
                details={"user_id": str(user_id)},
                user_friendly="Failed to get unread count",
            )
