"""Schemas for the connection, moderation, post and blocking routes."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_serializer, field_validator

from ..models.connection import ConnectionStatus
from ..models.post import PostStatus
from .shared import CamelModel, to_utc_iso


class ConnectionRead(CamelModel):
    id: int
    user1_id: uuid.UUID
    user2_id: uuid.UUID
    requested_by: uuid.UUID
    status: ConnectionStatus


class PostRead(CamelModel):
    id: int
    author_id: uuid.UUID
    title: str
    content: str = ""
    status: PostStatus
    moderator_id: uuid.UUID | None = None
    rejection_reason: str | None = None
    flagged: bool = False
    flag_reasons: list[str] = Field(default_factory=list)
    created_at: datetime | None = None

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime | None) -> str | None:
        return to_utc_iso(value) if value is not None else None


class RejectPostRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class LikeResult(CamelModel):
    liked: bool
    like_count: int


class CommentRequest(BaseModel):
    text: str = Field(..., max_length=1000)
    parent_comment_id: int | None = Field(default=None, alias="parentCommentId")

    model_config = {"populate_by_name": True}

    @field_validator("text")
    @classmethod
    def strip_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Comment text is required")
        return stripped


class CommentRead(CamelModel):
    id: int
    post_id: int
    author_id: uuid.UUID
    text: str
    parent_comment_id: int | None = None


class CreatePostRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(default="", max_length=10000)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Post title is required")
        return stripped


class UserSummary(CamelModel):
    id: uuid.UUID
    username: str
