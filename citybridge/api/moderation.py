"""Post moderation endpoints (moderator or admin role)."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from ..auth.dependencies import require_moderator
from ..dependencies import get_notification_dispatcher, get_post_repository
from ..error_types import ErrorMessages
from ..exceptions import ResourceNotFoundError
from ..middleware.rate_limit import rate_limit
from ..models.notification import NotificationType
from ..models.post import Post, PostStatus
from ..models.user import User
from ..persistence.repositories import PostRepository
from ..realtime.notification_dispatcher import NotificationDispatcher, post_approved_text, post_rejected_text
from ..schemas.social import PostRead, RejectPostRequest
from ..utils.error_logging import log_and_raise

moderation_router = APIRouter(prefix="/api/moderation", tags=["moderation"], dependencies=[Depends(rate_limit("api"))])


async def _moderate(
    posts: PostRepository,
    post_id: int,
    moderator: User,
    status: PostStatus,
    reason: str | None = None,
) -> Post:
    post = await posts.moderate(post_id, moderator.id, status, rejection_reason=reason)
    if post is None:
        log_and_raise(
            ResourceNotFoundError,
            "Moderated post does not exist",
            user_friendly=ErrorMessages.POST_NOT_FOUND,
            resource_type="post",
            resource_id=str(post_id),
        )
    return post


@moderation_router.put("/posts/{post_id}/approve")
async def approve_post(
    post_id: int,
    moderator: User = Depends(require_moderator),
    posts: PostRepository = Depends(get_post_repository),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    """Approve a post and notify its author."""
    post = await _moderate(posts, post_id, moderator, PostStatus.APPROVED)
    await dispatcher.dispatch(post.author_id, NotificationType.POST_APPROVED, post.id, post_approved_text(post.title))
    return PostRead.model_validate(post).to_wire()


@moderation_router.put("/posts/{post_id}/reject")
async def reject_post(
    post_id: int,
    body: RejectPostRequest | None = Body(default=None),
    moderator: User = Depends(require_moderator),
    posts: PostRepository = Depends(get_post_repository),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    """Reject a post, optionally with a reason, and notify its author."""
    reason = body.reason if body else None
    post = await _moderate(posts, post_id, moderator, PostStatus.REJECTED, reason)
    await dispatcher.dispatch(
        post.author_id, NotificationType.POST_REJECTED, post.id, post_rejected_text(post.title, reason)
    )
    return PostRead.model_validate(post).to_wire()


@moderation_router.get("/pending")
async def list_pending_posts(
    _moderator: User = Depends(require_moderator),
    posts: PostRepository = Depends(get_post_repository),
) -> list[dict[str, Any]]:
    """Review queue: pending posts, newest first."""
    return [PostRead.model_validate(post).to_wire() for post in await posts.list_pending()]


@moderation_router.get("/flagged")
async def list_flagged_posts(
    _moderator: User = Depends(require_moderator),
    posts: PostRepository = Depends(get_post_repository),
) -> list[dict[str, Any]]:
    """Posts flagged by content scoring, whatever their review status."""
    return [PostRead.model_validate(post).to_wire() for post in await posts.list_flagged()]
