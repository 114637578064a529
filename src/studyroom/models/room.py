"""Room and shared room-state models."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from studyroom.models.enums import TimerPhase


class Room(BaseModel):
    """A study room, addressed by its short share code."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    code: str
    name: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RoomState(BaseModel):
    """Shared timer and background state, one row per room.

    ``started_at`` is set exactly when ``running`` is true. Elapsed time is
    never stored; every client derives it from ``started_at``.
    """

    room_id: str
    running: bool = False
    started_at: datetime | None = None
    phase: TimerPhase = TimerPhase.FOCUS
    focus_seconds: int = Field(default=1500, ge=1)
    break_seconds: int = Field(default=300, ge=1)
    background_id: str | None = None

    @model_validator(mode="after")
    def _check_running_matches_started_at(self) -> RoomState:
        if self.running != (self.started_at is not None):
            raise ValueError("started_at must be set if and only if running is true")
        return self

    @property
    def duration_seconds(self) -> int:
        """Configured length of the current phase."""
        if self.phase == TimerPhase.BREAK:
            return self.break_seconds
        return self.focus_seconds
