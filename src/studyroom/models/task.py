"""Task model."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field


class Task(BaseModel):
    """An item on a participant's task list."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    room_id: str
    participant_id: str
    content: str
    done: bool = False
    sort_order: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
