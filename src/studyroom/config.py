"""Client configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from studyroom.models.enums import TimerCompletion


class StudyRoomConfig(BaseModel):
    """Tunables shared by the room managers.

    Attributes:
        heartbeat_interval: Seconds between ``last_seen`` refreshes.
        presence_threshold: A participant seen less than this many seconds
            ago counts as live.
        page_size: Chat messages fetched per page.
        duration_debounce: Delay before free-text duration input is written.
        tick_interval: Seconds between countdown re-evaluations.
        min_duration_seconds: Smallest accepted timer duration.
        max_duration_seconds: Largest accepted timer duration.
        timer_completion: What happens when a running countdown hits zero.
        room_code_length: Length of generated room codes.
        feed_queue_size: Per-subscription buffer for the in-memory change feed.
    """

    heartbeat_interval: float = Field(default=30.0, gt=0)
    presence_threshold: float = Field(default=120.0, gt=0)
    page_size: int = Field(default=100, ge=1)
    duration_debounce: float = Field(default=0.3, ge=0)
    tick_interval: float = Field(default=1.0, gt=0)
    min_duration_seconds: int = Field(default=1, ge=1)
    max_duration_seconds: int = Field(default=24 * 60 * 60, ge=1)
    timer_completion: TimerCompletion = TimerCompletion.SWITCH_PHASE
    room_code_length: int = Field(default=8, ge=4, le=32)
    feed_queue_size: int = Field(default=1000, ge=1)

    @model_validator(mode="after")
    def _check_duration_bounds(self) -> StudyRoomConfig:
        if self.min_duration_seconds > self.max_duration_seconds:
            raise ValueError("min_duration_seconds must not exceed max_duration_seconds")
        return self

    def clamp_duration(self, seconds: int) -> int:
        """Clamp *seconds* into the accepted duration range."""
        return max(self.min_duration_seconds, min(self.max_duration_seconds, seconds))
