"""Notification API endpoints."""

from typing import Any, NoReturn

from fastapi import APIRouter, Depends

from ..auth.dependencies import get_current_user
from ..dependencies import get_notification_repository
from ..error_types import ErrorMessages
from ..exceptions import ResourceNotFoundError
from ..middleware.rate_limit import rate_limit
from ..models.user import User
from ..persistence.repositories import NotificationRepository
from ..schemas.notification import NotificationRead
from ..utils.error_logging import log_and_raise

notifications_router = APIRouter(
    prefix="/api/notifications", tags=["notifications"], dependencies=[Depends(rate_limit("api"))]
)

NOTIFICATION_PAGE_SIZE = 50


def _not_found(notification_id: int) -> NoReturn:
    log_and_raise(
        ResourceNotFoundError,
        f"Notification {notification_id} not found for caller",
        user_friendly=ErrorMessages.NOTIFICATION_NOT_FOUND,
        resource_type="notification",
        resource_id=str(notification_id),
    )


@notifications_router.get("")
async def list_notifications(
    current_user: User = Depends(get_current_user),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> list[dict[str, Any]]:
    """The caller's most recent notifications, newest first."""
    rows = await notifications.list_for_user(current_user.id, limit=NOTIFICATION_PAGE_SIZE)
    return [NotificationRead.model_validate(row).to_wire() for row in rows]


@notifications_router.get("/unread/count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> dict[str, int]:
    return {"count": await notifications.count_unread(current_user.id)}


@notifications_router.put("/read-all")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> dict[str, str]:
    await notifications.mark_all_read(current_user.id)
    return {"message": "All notifications marked as read"}


@notifications_router.put("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> dict[str, Any]:
    notification = await notifications.mark_read(notification_id, current_user.id)
    if notification is None:
        _not_found(notification_id)
    return NotificationRead.model_validate(notification).to_wire()


@notifications_router.delete("/{notification_id}")
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> dict[str, str]:
    if not await notifications.delete(notification_id, current_user.id):
        _not_found(notification_id)
    return {"message": "Notification deleted"}
