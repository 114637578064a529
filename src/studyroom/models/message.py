"""Chat message model."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from studyroom.models.enums import MessageType


class Message(BaseModel):
    """A chat message. System messages are authored by the triggering participant."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    room_id: str
    participant_id: str
    content: str
    message_type: MessageType = MessageType.USER
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
