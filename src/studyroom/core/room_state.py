"""Shared room-state synchronizer."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from studyroom.config import StudyRoomConfig
from studyroom.core._helpers import Clock, Observable, utcnow
from studyroom.core.errors import NotJoinedError, PersistenceError
from studyroom.models.enums import Table, TimerPhase
from studyroom.models.room import RoomState
from studyroom.realtime.base import ChangeEvent, ChangeFeed
from studyroom.store.base import RoomStore

logger = logging.getLogger("studyroom.room_state")


class RoomStateSync(Observable):
    """Caches one room's ``RoomState`` and keeps it in step with the store.

    Every pushed row replaces the cache wholesale (last write wins). Each
    mutation writes only the columns it owns, so writers touching disjoint
    columns never clobber each other. ``running`` and ``started_at`` are
    always written together.
    """

    def __init__(
        self,
        store: RoomStore,
        feed: ChangeFeed,
        config: StudyRoomConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__()
        self._store = store
        self._feed = feed
        self._config = config or StudyRoomConfig()
        self._clock = clock
        self._room_id: str | None = None
        self._state: RoomState | None = None
        self._subscription: str | None = None

    @property
    def state(self) -> RoomState | None:
        return self._state

    @property
    def room_id(self) -> str | None:
        return self._room_id

    async def attach(self, room_id: str, state: RoomState) -> None:
        """Start following *room_id*, seeded with an already fetched row."""
        await self.detach()
        self._room_id = room_id
        self._state = state
        self._subscription = await self._feed.subscribe_to_room(
            Table.ROOM_STATE, room_id, self._on_change, on_gap=self.reload
        )
        self._notify()

    async def detach(self) -> None:
        if self._subscription is not None:
            await self._feed.unsubscribe(self._subscription)
            self._subscription = None
        if self._room_id is not None or self._state is not None:
            self._room_id = None
            self._state = None
            self._notify()

    async def _on_change(self, event: ChangeEvent) -> None:
        if event.new is None or event.new.get("room_id") != self._room_id:
            return
        try:
            self._state = RoomState.model_validate(event.new)
        except ValidationError:
            logger.warning("Ignoring malformed room_state push for %s", self._room_id)
            return
        self._notify()

    async def reload(self) -> None:
        """Refetch the row, e.g. after the feed lost events."""
        room_id = self._room_id
        if room_id is None:
            return
        try:
            state = await self._store.get_room_state(room_id)
        except PersistenceError:
            logger.warning("Could not refetch room_state for %s", room_id)
            return
        if state is None or self._room_id != room_id:
            return
        self._state = state
        self._notify()

    async def _write(self, changes: Mapping[str, Any]) -> RoomState:
        if self._room_id is None:
            raise NotJoinedError("Not in a room")
        state = await self._store.update_room_state(self._room_id, changes)
        self._state = state
        self._notify()
        return state

    async def start(self) -> RoomState:
        return await self._write({"running": True, "started_at": self._clock()})

    async def pause(self) -> RoomState:
        return await self._write({"running": False, "started_at": None})

    stop = pause
    reset = pause

    async def switch_phase(self, from_phase: TimerPhase | None = None) -> RoomState:
        """Flip focus/break and stop the timer without restarting it.

        Passing the phase that just finished makes the write idempotent when
        several clients complete the same countdown.
        """
        if from_phase is None:
            if self._state is None:
                raise NotJoinedError("Not in a room")
            from_phase = self._state.phase
        new_phase = TimerPhase.BREAK if from_phase == TimerPhase.FOCUS else TimerPhase.FOCUS
        return await self._write({"phase": new_phase, "running": False, "started_at": None})

    async def set_duration(self, seconds: int, phase: TimerPhase | None = None) -> RoomState:
        """Set one phase's length (the current phase by default), clamped."""
        if phase is None:
            phase = self._state.phase if self._state is not None else TimerPhase.FOCUS
        column = "break_seconds" if phase == TimerPhase.BREAK else "focus_seconds"
        return await self._write({column: self._config.clamp_duration(seconds)})

    async def set_durations(self, focus_seconds: int, break_seconds: int) -> RoomState:
        return await self._write(
            {
                "focus_seconds": self._config.clamp_duration(focus_seconds),
                "break_seconds": self._config.clamp_duration(break_seconds),
            }
        )

    async def set_background(self, background_id: str) -> RoomState:
        return await self._write({"background_id": background_id})
