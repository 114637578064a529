"""Countdown derived from the shared room state."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import re
from collections.abc import Awaitable, Callable
from datetime import datetime

from studyroom.config import StudyRoomConfig
from studyroom.core._helpers import Clock, Observable, utcnow
from studyroom.core.debounce import Debouncer
from studyroom.core.errors import PersistenceError, ValidationFailedError
from studyroom.core.room_state import RoomStateSync
from studyroom.models.enums import TimerCompletion
from studyroom.models.room import RoomState

logger = logging.getLogger("studyroom.timer")

CompletionCallback = Callable[[RoomState], Awaitable[None]]

_CLOCK_RE = re.compile(r"^(?:([0-9]+):)?([0-9]{1,2}):([0-9]{1,2})$")


def compute_remaining(
    duration: int,
    running: bool,
    started_at: datetime | None,
    now: datetime,
) -> int:
    """Seconds left on a countdown of *duration* seconds.

    A stopped timer shows its full duration. A running one counts whole
    elapsed seconds since ``started_at`` and never goes below zero.
    """
    if not running or started_at is None:
        return duration
    elapsed = math.floor((now - started_at).total_seconds())
    return max(0, duration - elapsed)


def remaining_for(state: RoomState, now: datetime) -> int:
    return compute_remaining(state.duration_seconds, state.running, state.started_at, now)


def format_time(seconds: int) -> str:
    """Render seconds as ``HH:MM:SS``."""
    seconds = max(0, seconds)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def describe_duration(seconds: int) -> str:
    """Short human label, e.g. ``25 mins`` or ``00:00:45``."""
    if seconds % 60 == 0:
        return f"{seconds // 60} mins"
    return format_time(seconds)


def parse_duration(text: str) -> int:
    """Parse ``HH:MM:SS``, ``MM:SS`` or a bare number of minutes into seconds."""
    text = text.strip()
    if text.isascii() and text.isdigit():
        return int(text) * 60
    match = _CLOCK_RE.match(text)
    if match is None:
        raise ValidationFailedError(f"Invalid duration: {text!r}")
    hours, minutes, secs = match.groups()
    # Minutes may exceed 59 only in the MM:SS form.
    if int(secs) >= 60 or (hours is not None and int(minutes) >= 60):
        raise ValidationFailedError(f"Invalid duration: {text!r}")
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(secs)


class CountdownTimer(Observable):
    """Re-evaluates the shared countdown on a fixed tick.

    When a running countdown reaches zero the configured completion (stop or
    phase switch) fires exactly once for that run, identified by its
    ``started_at``; later ticks that still read zero do nothing.
    """

    def __init__(
        self,
        sync: RoomStateSync,
        config: StudyRoomConfig | None = None,
        clock: Clock = utcnow,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        super().__init__()
        self._sync = sync
        self._config = config or StudyRoomConfig()
        self._clock = clock
        self._on_complete = on_complete
        self._seconds_left = 0
        self._completed_for: datetime | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._duration_input = Debouncer(
            self._config.duration_debounce, self._write_duration, name="timer-duration"
        )

    @property
    def seconds_left(self) -> int:
        """Value computed by the most recent tick."""
        return self._seconds_left

    @property
    def formatted_time(self) -> str:
        return format_time(self._seconds_left)

    @property
    def is_ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def is_running(self) -> bool:
        state = self._sync.state
        return state.running if state is not None else False

    def remaining(self, now: datetime | None = None) -> int:
        """Compute the countdown right now without side effects."""
        state = self._sync.state
        if state is None:
            return 0
        return remaining_for(state, now or self._clock())

    async def tick(self) -> int:
        state = self._sync.state
        if state is None:
            remaining = 0
        else:
            remaining = remaining_for(state, self._clock())
        changed = remaining != self._seconds_left
        self._seconds_left = remaining
        if changed:
            self._notify()

        if (
            state is not None
            and remaining == 0
            and state.running
            and state.started_at is not None
            and state.started_at != self._completed_for
        ):
            self._completed_for = state.started_at
            await self._complete(state)
        return remaining

    async def _complete(self, state: RoomState) -> None:
        logger.info("Countdown finished in room %s (%s)", state.room_id, state.phase)
        try:
            if self._config.timer_completion == TimerCompletion.STOP:
                await self._sync.stop()
            else:
                await self._sync.switch_phase(from_phase=state.phase)
        except PersistenceError:
            logger.warning("Could not record timer completion for room %s", state.room_id)
            return
        if self._on_complete is not None:
            await self._on_complete(state)

    def start_ticking(self) -> None:
        if self._tick_task is None or self._tick_task.done():
            self._tick_task = asyncio.create_task(self._tick_loop(), name="timer-tick")

    async def stop_ticking(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._tick_task
            self._tick_task = None

    async def _tick_loop(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Timer tick failed")
            await asyncio.sleep(self._config.tick_interval)

    def set_duration_input(self, text: str) -> int:
        """Accept free-text duration input; the write happens once typing pauses.

        Returns the clamped number of seconds that will be written.
        """
        seconds = self._config.clamp_duration(parse_duration(text))
        self._duration_input.trigger(seconds)
        return seconds

    async def flush_duration(self) -> None:
        await self._duration_input.flush()

    async def _write_duration(self, seconds: int) -> None:
        await self._sync.set_duration(seconds)

    async def close(self) -> None:
        self._duration_input.cancel()
        await self.stop_ticking()
