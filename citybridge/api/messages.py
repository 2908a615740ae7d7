"""
Direct message API endpoints.

POST /api/messages goes through the same policy check as the realtime
send_message event and pushes receive_message to an online receiver once the
message is stored.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query

from ..auth.dependencies import get_current_user
from ..dependencies import get_message_relay, get_message_repository, get_user_repository
from ..middleware.rate_limit import rate_limit
from ..models.user import User
from ..persistence.repositories import MessageRepository, UserRepository
from ..realtime.message_relay import MessageRelay
from ..schemas.message import (
    ConversationPeer,
    ConversationSummary,
    MessagePage,
    MessageRead,
    PaginationInfo,
    SendMessageRequest,
)
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

messages_router = APIRouter(prefix="/api/messages", tags=["messages"], dependencies=[Depends(rate_limit("api"))])


@messages_router.post("", status_code=201, dependencies=[Depends(rate_limit("message"))])
async def send_message(
    body: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    relay: MessageRelay = Depends(get_message_relay),
) -> dict[str, Any]:
    """Store a direct message and push it to the receiver if they are online."""
    message = await relay.send(current_user.id, body)
    receiver_online = await relay.deliver(message)
    logger.info(
        "Message sent over HTTP",
        message_id=message.id,
        receiver_id=str(message.receiver_id),
        receiver_online=receiver_online,
    )
    return MessageRead.model_validate(message).to_wire()


@messages_router.get("/conversations")
async def list_conversations(
    current_user: User = Depends(get_current_user),
    messages: MessageRepository = Depends(get_message_repository),
    users: UserRepository = Depends(get_user_repository),
) -> list[dict[str, Any]]:
    """One entry per conversation partner, newest conversation first."""
    rows = await messages.list_conversations(current_user.id)
    peers = await users.get_many([row.peer_id for row in rows])
    summaries = []
    for row in rows:
        peer = peers.get(row.peer_id)
        if peer is None:
            continue
        summaries.append(
            ConversationSummary(
                user=ConversationPeer(id=peer.id, username=peer.username),
                last_message=MessageRead.model_validate(row.last_message),
                unread_count=row.unread_count,
            ).to_wire()
        )
    return summaries


@messages_router.get("/unread/count")
async def unread_count(
    current_user: User = Depends(get_current_user),
    messages: MessageRepository = Depends(get_message_repository),
) -> dict[str, int]:
    return {"count": await messages.count_unread(current_user.id)}


@messages_router.get("/{user_id}")
async def get_conversation(
    user_id: uuid.UUID,
    cursor: int | None = Query(default=None, ge=1, description="Return messages with ids below this one"),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    messages: MessageRepository = Depends(get_message_repository),
) -> dict[str, Any]:
    """
    Fetch one page of the conversation with user_id, oldest first.

    Messages from user_id to the caller are marked read.
    """
    page = await messages.get_page(current_user.id, user_id, cursor=cursor, limit=limit)
    marked = await messages.mark_conversation_read(current_user.id, user_id)
    if marked:
        logger.debug("Conversation marked read", peer_id=str(user_id), marked=marked)
    return MessagePage(
        messages=[MessageRead.model_validate(m) for m in page.messages],
        pagination=PaginationInfo(has_more=page.has_more, next_cursor=page.next_cursor),
    ).to_wire()
