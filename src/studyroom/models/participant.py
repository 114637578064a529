"""Participant model."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field


class Participant(BaseModel):
    """One device's membership in a room, optionally linked to an account."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    room_id: str
    user_id: str | None = None
    name: str
    is_active: bool = True
    do_not_disturb: bool = False
    last_seen: datetime = Field(default_factory=lambda: datetime.now(UTC))
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    on_break: bool = False
    break_started_at: datetime | None = None
    current_task_id: str | None = None
