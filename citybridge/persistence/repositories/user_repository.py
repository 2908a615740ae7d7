"""
User repository for async persistence.

Covers account lookup plus the block list consulted by the messaging policy.
"""

import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...database import Database
from ...exceptions import ConflictError, DatabaseError
from ...models.base import utc_now
from ...models.user import MessagingPrivacy, User, UserBlock, UserRole
from ...structured_logging.enhanced_logging_config import get_logger
from ...utils.error_logging import log_and_raise

logger = get_logger(__name__)


class UserRepository:
    """Repository for the users and user_blocks tables."""

    def __init__(self, database: Database) -> None:
        self._database = database
        self._logger = get_logger(__name__)

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        try:
            async with self._database.session() as session:
                return await session.get(User, user_id)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading user: {e}",
                operation="get_by_id",
                table="users",
                details={"user_id": str(user_id)},
            )

    async def get_many(self, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
        """Load several users at once, keyed by id; unknown ids are absent."""
        if not user_ids:
            return {}
        try:
            async with self._database.session() as session:
                result = await session.execute(select(User).where(User.id.in_(user_ids)))
                return {user.id: user for user in result.scalars().all()}
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading users: {e}",
                operation="get_many",
                table="users",
                details={"count": len(user_ids)},
            )

    async def create(
        self,
        username: str,
        email: str,
        *,
        role: UserRole = UserRole.USER,
        messaging_privacy: MessagingPrivacy = MessagingPrivacy.OPEN,
    ) -> User:
        """
        Insert a new user.

        Raises:
            ConflictError: If the username or email is taken
            DatabaseError: On any other storage failure
        """
        user = User(username=username, email=email, role=role, messaging_privacy=messaging_privacy)
        try:
            async with self._database.session() as session:
                session.add(user)
                await session.commit()
                await session.refresh(user)
        except IntegrityError as e:
            log_and_raise(
                ConflictError,
                f"User already exists: {e}",
                details={"username": username},
                user_friendly="Username or email already registered",
            )
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error creating user: {e}",
                operation="create",
                table="users",
                details={"username": username},
            )
        self._logger.info("User created", user_id=str(user.id), role=user.role.value)
        return user

    async def touch_last_active(self, user_id: uuid.UUID) -> None:
        try:
            async with self._database.session() as session:
                await session.execute(update(User).where(User.id == user_id).values(last_active=utc_now()))
                await session.commit()
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error updating last_active: {e}",
                operation="touch_last_active",
                table="users",
                details={"user_id": str(user_id)},
            )

    async def is_blocked(self, blocker_id: uuid.UUID, blocked_id: uuid.UUID) -> bool:
        """Return True if blocker_id has blocked blocked_id."""
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(UserBlock.id).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
                )
                return result.first() is not None
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error checking block list: {e}",
                operation="is_blocked",
                table="user_blocks",
                details={"blocker_id": str(blocker_id), "blocked_id": str(blocked_id)},
            )

    async def block(self, blocker_id: uuid.UUID, blocked_id: uuid.UUID) -> bool:
        """Add a block; returns False when it already existed."""
        if await self.is_blocked(blocker_id, blocked_id):
            return False
        try:
            async with self._database.session() as session:
                session.add(UserBlock(blocker_id=blocker_id, blocked_id=blocked_id))
                await session.commit()
        except IntegrityError:
            # Concurrent duplicate insert
            return False
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error blocking user: {e}",
                operation="block",
                table="user_blocks",
                details={"blocker_id": str(blocker_id), "blocked_id": str(blocked_id)},
            )
        self._logger.info("User blocked", blocker_id=str(blocker_id), blocked_id=str(blocked_id))
        return True

    async def unblock(self, blocker_id: uuid.UUID, blocked_id: uuid.UUID) -> bool:
        """Remove a block; returns False when there was none."""
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    delete(UserBlock).where(UserBlock.blocker_id == blocker_id, UserBlock.blocked_id == blocked_id)
                )
                await session.commit()
                removed = (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error unblocking user: {e}",
                operation="unblock",
                table="user_blocks",
                details={"blocker_id": str(blocker_id), "blocked_id": str(blocked_id)},
            )
        if removed:
            self._logger.info("User unblocked", blocker_id=str(blocker_id), blocked_id=str(blocked_id))
        return removed

    async def list_blocked(self, blocker_id: uuid.UUID) -> list[User]:
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(User)
                    .join(UserBlock, UserBlock.blocked_id == User.id)
                    .where(UserBlock.blocker_id == blocker_id)
                    .order_by(User.username)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error listing blocked users: {e}",
                operation="list_blocked",
                table="user_blocks",
                details={"blocker_id": str(blocker_id)},
            )
