"""Schemas for notifications."""

import uuid
from datetime import datetime

from pydantic import AliasChoices, Field, field_serializer

from ..models.notification import NotificationType
from .shared import CamelModel, to_utc_iso


class NotificationRead(CamelModel):
    id: int
    user_id: uuid.UUID = Field(validation_alias=AliasChoices("user_id", "userId"))
    type: NotificationType
    related_id: str = Field(validation_alias=AliasChoices("related_id", "relatedId"))
    from_user_id: uuid.UUID | None = Field(default=None, validation_alias=AliasChoices("from_user_id", "fromUserId"))
    content: str
    read: bool
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return to_utc_iso(value)
