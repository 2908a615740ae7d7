"""Schemas for direct messages."""

import uuid
from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field, field_serializer, field_validator

from .shared import CamelModel, to_utc_iso


class MessageRead(CamelModel):
    """A persisted message as clients see it."""

    id: int
    sender: uuid.UUID = Field(validation_alias=AliasChoices("sender_id", "sender"))
    receiver: uuid.UUID = Field(validation_alias=AliasChoices("receiver_id", "receiver"))
    content: str
    read: bool
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return to_utc_iso(value)


class SendMessageRequest(BaseModel):
    """Body of POST /api/messages and data of the send_message event."""

    receiver: uuid.UUID = Field(..., description="Recipient user id")
    content: str = Field(..., description="Message text; the length limit is enforced by MessageRelay")

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Message content is required")
        return stripped


class ConversationPeer(CamelModel):
    id: uuid.UUID
    username: str


class ConversationSummary(CamelModel):
    """One entry of GET /api/messages/conversations: the peer and the latest message."""

    user: ConversationPeer
    last_message: MessageRead
    unread_count: int = 0


class PaginationInfo(CamelModel):
    has_more: bool
    next_cursor: int | None = None


class MessagePage(CamelModel):
    """Chronologically ordered slice of a conversation."""

    messages: list[MessageRead]
    pagination: PaginationInfo
