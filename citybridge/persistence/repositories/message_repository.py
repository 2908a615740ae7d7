"""
Message repository for async persistence.

Supports the realtime relay (create), conversation history with cursor
pagination, read marking and unread counts.
"""

import uuid
from dataclasses import dataclass

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from ...database import Database
from ...exceptions import DatabaseError
from ...models.message import Message
from ...structured_logging.enhanced_logging_config import get_logger
from ...utils.error_logging import log_and_raise

logger = get_logger(__name__)


@dataclass
class MessageSlice:
    """Messages in chronological order plus the cursor for the next older slice."""

    messages: list[Message]
    has_more: bool
    next_cursor: int | None


@dataclass
class ConversationRow:
    peer_id: uuid.UUID
    last_message: Message
    unread_count: int


def _between(a: uuid.UUID, b: uuid.UUID):
    return or_(
        and_(Message.sender_id == a, Message.receiver_id == b),
        and_(Message.sender_id == b, Message.receiver_id == a),
    )


class MessageRepository:
    """Repository for the messages table."""

    def __init__(self, database: Database) -> None:
        self._database = database

    async def create(self, sender_id: uuid.UUID, receiver_id: uuid.UUID, content: str) -> Message:
        """
        Persist a message and return it with its assigned id and timestamp.

        Raises:
            DatabaseError: If the insert fails; nothing is stored in that case
        """
        message = Message(sender_id=sender_id, receiver_id=receiver_id, content=content)
        try:
            async with self._database.session() as session:
                session.add(message)
                await session.commit()
                await session.refresh(message)
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error saving message: {e}",
                operation="create",
                table="messages",
                details={"sender_id": str(sender_id), "receiver_id": str(receiver_id)},
                user_friendly="Failed to send message",
            )
        logger.debug("Message stored", message_id=message.id, sender_id=str(sender_id), receiver_id=str(receiver_id))
        return message

    async def get_page(
        self,
        user_id: uuid.UUID,
        other_id: uuid.UUID,
        *,
        cursor: int | None = None,
        limit: int = 50,
    ) -> MessageSlice:
        """
        Fetch the newest messages of a conversation older than cursor.

        One extra row is read to decide has_more. The returned messages are
        oldest first and next_cursor is the id of the oldest one when more
        history exists.
        """
        try:
            async with self._database.session() as session:
                stmt = select(Message).where(_between(user_id, other_id))
                if cursor is not None:
                    stmt = stmt.where(Message.id < cursor)
                result = await session.execute(stmt.order_by(Message.id.desc()).limit(limit + 1))
                rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error loading conversation: {e}",
                operation="get_page",
                table="messages",
                details={"user_id": str(user_id), "other_id": str(other_id), "cursor": cursor},
                user_friendly="Failed to get messages",
            )

        has_more = len(rows) > limit
        batch = rows[:limit]
        next_cursor = batch[-1].id if has_more and batch else None
        batch.reverse()
        return MessageSlice(messages=batch, has_more=has_more, next_cursor=next_cursor)

    async def mark_conversation_read(self, receiver_id: uuid.UUID, sender_id: uuid.UUID) -> int:
        """Mark every unread message from sender_id to receiver_id as read; returns the number updated."""
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    update(Message)
                    .where(
                        Message.sender_id == sender_id,
                        Message.receiver_id == receiver_id,
                        Message.read.is_(False),
                    )
                    .values(read=True)
                )
                await session.commit()
                return result.rowcount or 0
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error marking messages read: {e}",
                operation="mark_conversation_read",
                table="messages",
                details={"receiver_id": str(receiver_id), "sender_id": str(sender_id)},
            )

    async def count_unread(self, receiver_id: uuid.UUID) -> int:
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(func.count(Message.id)).where(Message.receiver_id == receiver_id, Message.read.is_(False))
                )
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error counting unread messages: {e}",
                operation="count_unread",
                table="messages",
                details={"receiver_id": str(receiver_id)},
            )

    async def list_conversations(self, user_id: uuid.UUID) -> list[ConversationRow]:
        """One row per peer the user has exchanged messages with, most recent conversation first."""
        peer = case((Message.sender_id == user_id, Message.receiver_id), else_=Message.sender_id)
        latest = (
            select(peer.label("peer_id"), func.max(Message.id).label("last_id"))
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .group_by(peer)
            .subquery()
        )
        try:
            async with self._database.session() as session:
                result = await session.execute(
                    select(Message).join(latest, Message.id == latest.c.last_id).order_by(Message.id.desc())
                )
                last_messages = list(result.scalars().all())

                unread_result = await session.execute(
                    select(Message.sender_id, func.count(Message.id))
                    .where(Message.receiver_id == user_id, Message.read.is_(False))
                    .group_by(Message.sender_id)
                )
                unread_by_peer = {row[0]: int(row[1]) for row in unread_result.all()}
        except SQLAlchemyError as e:
            log_and_raise(
                DatabaseError,
                f"Database error listing conversations: {e}",
                operation="list_conversations",
                table="messages",
                details={"user_id": str(user_id)},
                user_friendly="Failed to get conversations",
            )

        rows = []
        for message in last_messages:
            peer_id = message.receiver_id if message.sender_id == user_id else message.sender_id
            rows.append(
                ConversationRow(peer_id=peer_id, last_message=message, unread_count=unread_by_peer.get(peer_id, 0))
            )
        return rows
