"""
Post endpoints: creation, likes and comments.

Like and comment notices are best effort; the like or comment itself
succeeds even when its notification cannot be stored.
"""

from typing import Any

from fastapi import APIRouter, Depends

from ..auth.dependencies import get_current_user
from ..dependencies import get_notification_dispatcher, get_post_repository
from ..error_types import ErrorMessages
from ..exceptions import ResourceNotFoundError
from ..middleware.rate_limit import rate_limit
from ..models.post import Post
from ..models.user import User
from ..persistence.repositories import PostRepository
from ..realtime.notification_dispatcher import NotificationDispatcher
from ..schemas.social import CommentRead, CommentRequest, CreatePostRequest, LikeResult, PostRead
from ..services.content_moderation import moderate_content
from ..structured_logging.enhanced_logging_config import get_logger
from ..utils.error_logging import log_and_raise

logger = get_logger(__name__)

posts_router = APIRouter(prefix="/api/posts", tags=["posts"], dependencies=[Depends(rate_limit("api"))])


async def _get_post_or_404(posts: PostRepository, post_id: int) -> Post:
    post = await posts.get_by_id(post_id)
    if post is None:
        log_and_raise(
            ResourceNotFoundError,
            "Post does not exist",
            user_friendly=ErrorMessages.POST_NOT_FOUND,
            resource_type="post",
            resource_id=str(post_id),
        )
    return post


@posts_router.post("", status_code=201, dependencies=[Depends(rate_limit("post"))])
async def create_post(
    body: CreatePostRequest,
    current_user: User = Depends(get_current_user),
    posts: PostRepository = Depends(get_post_repository),
) -> dict[str, Any]:
    """
    Create a post; it stays pending until a moderator reviews it.

    The text is scored for spam and abuse and compared with the author's posts
    from the last day; either finding flags the post for the moderator queue.
    """
    moderation = moderate_content(body.content, body.title)
    if await posts.has_recent_similar(current_user.id, body.content or body.title):
        moderation.mark_duplicate()

    post = await posts.create(
        current_user.id,
        body.title,
        body.content,
        flagged=moderation.flagged,
        flag_reasons=moderation.reasons,
    )
    if post.flagged:
        logger.info("Post flagged for review", post_id=post.id, score=moderation.score, reasons=moderation.reasons)
    return PostRead.model_validate(post).to_wire()


@posts_router.post("/{post_id}/like")
async def toggle_like(
    post_id: int,
    current_user: User = Depends(get_current_user),
    posts: PostRepository = Depends(get_post_repository),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    post = await _get_post_or_404(posts, post_id)
    liked, like_count = await posts.toggle_like(post.id, current_user.id)
    if liked:
        await dispatcher.notify_post_liked(post.author_id, post.id, current_user.id, current_user.username, post.title)
    return LikeResult(liked=liked, like_count=like_count).to_wire()


@posts_router.post("/{post_id}/comment", status_code=201)
async def add_comment(
    post_id: int,
    body: CommentRequest,
    current_user: User = Depends(get_current_user),
    posts: PostRepository = Depends(get_post_repository),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> dict[str, Any]:
    """
    Comment on a post, or reply to one of its comments.

    A top-level comment notifies the post author; a reply notifies the author
    of the parent comment instead.
    """
    post = await _get_post_or_404(posts, post_id)

    parent = None
    if body.parent_comment_id is not None:
        parent = await posts.get_comment(body.parent_comment_id)
        if parent is None or parent.post_id != post.id:
            log_and_raise(
                ResourceNotFoundError,
                "Parent comment does not exist on this post",
                user_friendly="Comment not found",
                resource_type="comment",
                resource_id=str(body.parent_comment_id),
            )

    comment = await posts.add_comment(post.id, current_user.id, body.text, parent.id if parent else None)

    if parent is not None:
        await dispatcher.notify_comment_replied(
            parent.author_id, post.id, current_user.id, current_user.username, post.title
        )
    else:
        await dispatcher.notify_post_commented(
            post.author_id, post.id, current_user.id, current_user.username, post.title
        )
    return CommentRead.model_validate(comment).to_wire()
