"""Post, like and comment repository for async persistence."""

import uuid
from datetime import timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from ...database import Database
from ...exceptions import DatabaseError
from ...models.base import utc_now
from ...models.post import Comment, Post, PostLike, PostStatus
from ...structured_logging.enhanced_logging_config import get_logger
from ...utils.error_logging import log_and_raise

logger = get_logger(__name__)

DUPLICATE_WINDOW = timedelta(hours=24)
DUPLICATE_PREFIX_LENGTH = 100
QUEUE_LIMIT = 100


class PostRepository:
    """Repository for the posts, post_likes and comments tables."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get_by_id(self, post_id: int) -> Post | None:
        try:
            async with self._database.session() as session:
                return await session.get(Post, post_id)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading post: {e}",
                operation="get_by_id",
                table="posts",
                details={"post_id": post_id},
            )

    async def create(
        self,
        author_id: uuid.UUID,
        title: str,
        content: str = "",
        flagged: bool = False,
        flag_reasons: list[str] | None = None,
    ) -> Post:
        post = Post(
            author_id=author_id,
            title=title,
            content=content,
            status=PostStatus.PENDING,
            flagged=flagged,
            flag_reasons=list(flag_reasons or []),
        )
        try:
            async with self._database.session() as session:
                session.add(post)
                await session.commit()
                await session.refresh(post)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error creating post: {e}",
                operation="create",
                table="posts",
                details={"author_id": str(author_id)},
            )
        return post

    async def has_recent_similar(self, author_id: uuid.UUID, text: str) -> bool:
        """
        Whether the author posted content containing the start of text in the last 24 hours.

        Matching is case-insensitive against the first 100 characters of text.
        """
        snippet = text.strip()[:DUPLICATE_PREFIX_LENGTH]
        if not snippet:
            return False
        since = utc_now() - DUPLICATE_WINDOW
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(Post.id)
                    .where(
                        Post.author_id == author_id,
                        Post.created_at >= since,
                        Post.content.icontains(snippet, autoescape=True),
                    )
                    .limit(1)
                )
                return result.first() is not None
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error checking duplicate posts: {e}",
                operation="has_recent_similar",
                table="posts",
                details={"author_id": str(author_id)},
            )

    async def list_pending(self, limit: int = QUEUE_LIMIT) -> list[Post]:
        """Posts awaiting review, newest first."""
        return await self._list_where(Post.status == PostStatus.PENDING, limit, "list_pending")

    async def list_flagged(self, limit: int = QUEUE_LIMIT) -> list[Post]:
        """Posts flagged by content scoring in any status, newest first."""
        return await self._list_where(Post.flagged.is_(True), limit, "list_flagged")

    async def _list_where(self, condition, limit: int, operation: str) -> list[Post]:
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(Post).where(condition).order_by(Post.created_at.desc(), Post.id.desc()).limit(limit)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            log_and_raise(DatabaseError, f"Database error listing posts: {e}", operation=operation, table="posts")

    async def moderate(
        self,
        post_id: int,
        moderator_id: uuid.UUID,
        status: PostStatus,
        rejection_reason: str | None = None,
    ) -> Post | None:
        """Set a post's moderation outcome; None when the post does not exist."""
        try:
            async with self._database.session() as session:
                post = await session.get(Post, post_id)
                if post is None:
                    return None
                post.status = status
                post.moderator_id = moderator_id
                if status == PostStatus.APPROVED:
                    post.approved_at = utc_now()
                    post.rejection_reason = None
                else:
                    post.rejection_reason = rejection_reason
                await session.commit()
                await session.refresh(post)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error moderating post: {e}",
                operation="moderate",
                table="posts",
                details={"post_id": post_id, "status": status.value},
            )
        logger.info("Post moderated", post_id=post_id, moderator_id=str(moderator_id), status=status.value)
        return post

    async def toggle_like(self, post_id: int, user_id: uuid.UUID) -> tuple[bool, int]:
        """
        Like the post, or remove the like if it already exists.

        Returns:
            (liked, like_count) after the toggle
        """
        try:
            async with self._database.session() as session:
                existing = await session.execute(
                    select(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user_id)
                )
                like = existing.scalars().first()
                if like is None:
                    session.add(PostLike(post_id=post_id, user_id=user_id))
                    liked = True
                else:
                    await session.execute(delete(PostLike).where(PostLike.id == like.id))
                    liked = False
                await session.commit()
                count_result = await session.execute(
                    select(func.count(PostLike.id)).where(PostLike.post_id == post_id)
                )
                return liked, int(count_result.scalar_one())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error toggling like: {e}",
                operation="toggle_like",
                table="post_likes",
                details={"post_id": post_id, "user_id": str(user_id)},
            )

    async def get_comment(self, comment_id: int) -> Comment | None:
        try:
            async with self._database.session() as session:
                return await session.get(Comment, comment_id)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading comment: {e}",
                operation="get_comment",
                table="comments",
                details={"comment_id": comment_id},
            )

    async def add_comment(
        self,
        post_id: int,
        author_id: uuid.UUID,
        text: str,
        parent_comment_id: int | None = None,
    ) -> Comment:
        comment = Comment(post_id=post_id, author_id=author_id, text=text, parent_comment_id=parent_comment_id)
        try:
            async with self._database.session() as session:
                session.add(comment)
                await session.commit()
                await session.refresh(comment)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error adding comment: {e}",
                operation="add_comment",
                table="comments",
                details={"post_id": post_id, "author_id": str(author_id)},
            )
        return comment
