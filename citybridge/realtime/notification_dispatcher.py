"""
Notification dispatcher.

dispatch() is the only way notifications get written: it drops
self-notifications, persists the record and then pushes new_notification to
the target if they are online. Offline targets pick the record up through
GET /api/notifications later.
"""

import uuid

from ..exceptions import CityBridgeError
from ..models.notification import Notification, NotificationType
from ..persistence.repositories.notification_repository import NotificationRepository
from ..schemas.notification import NotificationRead
from ..structured_logging.enhanced_logging_config import get_logger, log_exception_once
from .presence_registry import PresenceRegistry

logger = get_logger(__name__)

TITLE_PREVIEW_LENGTH = 50


def preview_title(title: str, limit: int = TITLE_PREVIEW_LENGTH) -> str:
    """First limit characters of a post title, with "..." appended when it was cut."""
    return title[:limit] + ("..." if len(title) > limit else "")


def like_text(username: str, post_title: str) -> str:
    return f'{username} liked your post "{preview_title(post_title)}"'


def comment_text(username: str, post_title: str) -> str:
    return f'{username} commented on your post "{preview_title(post_title)}"'


def reply_text(username: str, post_title: str) -> str:
    return f'{username} replied to your comment on "{preview_title(post_title)}"'


def friend_request_text(username: str) -> str:
    return f"{username} sent you a friend request"


def friend_accepted_text(username: str) -> str:
    return f"{username} accepted your friend request"


def post_approved_text(post_title: str) -> str:
    return f'Your post "{post_title}" has been approved'


def post_rejected_text(post_title: str, reason: str | None = None) -> str:
    text = f'Your post "{post_title}" was rejected'
    if reason:
        text += f". Reason: {reason}"
    return text


class NotificationDispatcher:
    """Persist-then-push notification delivery."""

    def __init__(self, notification_repository: NotificationRepository, presence: PresenceRegistry) -> None:
        self._notifications = notification_repository
        self._presence = presence

    async def dispatch(
        self,
        target_user_id: uuid.UUID,
        notification_type: NotificationType,
        related_id: str | int,
        content: str,
        origin_user_id: uuid.UUID | None = None,
    ) -> Notification | None:
        """
        Create a notification for target_user_id and push it if they are connected.

        Args:
            target_user_id: User to notify
            notification_type: One of NotificationType
            related_id: Id of the post, connection or comment the notice is about
            content: Human readable text
            origin_user_id: User whose action caused the notice, if any

        Returns:
            The stored notification, or None when target and origin are the same user

        Raises:
            DatabaseError: If the record could not be stored; nothing is pushed then
        """
        if origin_user_id is not None and target_user_id == origin_user_id:
            logger.debug(
                "Skipping self-notification",
                user_id=str(target_user_id),
                notification_type=notification_type.value,
            )
            return None

        notification = await self._notifications.create(
            user_id=target_user_id,
            notification_type=notification_type,
            related_id=str(related_id),
            content=content,
            from_user_id=origin_user_id,
        )

        pushed = await self._presence.send_to_user(
            target_user_id,
            "new_notification",
            NotificationRead.model_validate(notification).to_wire(),
        )
        logger.info(
            "Notification dispatched",
            notification_id=notification.id,
            user_id=str(target_user_id),
            notification_type=notification_type.value,
            pushed=pushed,
        )
        return notification

    async def _dispatch_best_effort(
        self,
        target_user_id: uuid.UUID,
        notification_type: NotificationType,
        related_id: str | int,
        content: str,
        origin_user_id: uuid.UUID,
    ) -> Notification | None:
        # Likes and comments succeed even when their notice cannot be stored
        try:
            return await self.dispatch(target_user_id, notification_type, related_id, content, origin_user_id)
        except CityBridgeError as e:
            log_exception_once(
                logger,
                "warning",
                "Notification not created",
                exc=e,
                user_id=str(target_user_id),
                notification_type=notification_type.value,
            )
            return None

    async def notify_post_liked(
        self, post_owner_id: uuid.UUID, post_id: int, liker_id: uuid.UUID, liker_username: str, post_title: str
    ) -> Notification | None:
        return await self._dispatch_best_effort(
            post_owner_id, NotificationType.POST_LIKED, post_id, like_text(liker_username, post_title), liker_id
        )

    async def notify_post_commented(
        self,
        post_owner_id: uuid.UUID,
        post_id: int,
        commenter_id: uuid.UUID,
        commenter_username: str,
        post_title: str,
    ) -> Notification | None:
        return await self._dispatch_best_effort(
            post_owner_id,
            NotificationType.POST_COMMENTED,
            post_id,
            comment_text(commenter_username, post_title),
            commenter_id,
        )

    async def notify_comment_replied(
        self,
        original_commenter_id: uuid.UUID,
        post_id: int,
        replier_id: uuid.UUID,
        replier_username: str,
        post_title: str,
    ) -> Notification | None:
        return await self._dispatch_best_effort(
            original_commenter_id,
            NotificationType.COMMENT_REPLIED,
            post_id,
            reply_text(replier_username, post_title),
            replier_id,
        )

    async def unread_count(self, user_id: uuid.UUID) -> int:
        return await self._notifications.count_unread(user_id)
