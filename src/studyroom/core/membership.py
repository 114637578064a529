"""Room membership: join, leave, presence and per-participant settings."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from studyroom.config import StudyRoomConfig
from studyroom.core._helpers import Clock, Observable, utcnow
from studyroom.core.directory import normalize_code
from studyroom.core.errors import (
    AlreadyInProgressError,
    IdentityRequiredError,
    JoinFailedError,
    NotJoinedError,
    PersistenceError,
    RoomNotFoundError,
    ValidationFailedError,
)
from studyroom.core.room_state import RoomStateSync
from studyroom.identity.resolver import IdentityResolver, normalize_name
from studyroom.models.appearance import is_known_background
from studyroom.models.enums import ChangeType, Table
from studyroom.models.participant import Participant
from studyroom.models.room import Room, RoomState
from studyroom.realtime.base import ChangeEvent, ChangeFeed
from studyroom.store.base import RoomStore
from studyroom.store.local import DeviceStorage, participant_key

logger = logging.getLogger("studyroom.membership")


@dataclass(frozen=True)
class JoinResult:
    """Everything a client needs to render a freshly joined room."""

    room: Room
    state: RoomState
    participant: Participant
    participants: list[Participant]


class RoomMembership(Observable):
    """Owns the joined room, the current participant and the active roster.

    Local writes are mirrored into the cache as soon as the store returns the
    row. Pushed rows are applied by primary key (replace, never append), so
    an optimistic copy and its echo can arrive in either order.
    """

    def __init__(
        self,
        store: RoomStore,
        feed: ChangeFeed,
        identity: IdentityResolver,
        storage: DeviceStorage,
        state_sync: RoomStateSync,
        config: StudyRoomConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__()
        self._store = store
        self._feed = feed
        self._identity = identity
        self._storage = storage
        self._state_sync = state_sync
        self._config = config or StudyRoomConfig()
        self._clock = clock

        self._room: Room | None = None
        self._current: Participant | None = None
        self._participants: dict[str, Participant] = {}
        self._subscriptions: list[str] = []
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._joining = False
        self.dnd_enabled_at: datetime | None = None

    # -- read side ---------------------------------------------------------

    @property
    def room(self) -> Room | None:
        return self._room

    @property
    def room_state(self) -> RoomState | None:
        return self._state_sync.state

    @property
    def current_participant(self) -> Participant | None:
        return self._current

    @property
    def is_joining(self) -> bool:
        return self._joining

    @property
    def participants(self) -> list[Participant]:
        """Active participants ordered by ``(created_at, id)``."""
        return sorted(self._participants.values(), key=lambda p: (p.created_at, p.id))

    @property
    def sorted_participants(self) -> list[Participant]:
        """Current participant first, then everyone else in join order."""
        ordered = self.participants
        if self._current is None:
            return ordered
        mine = [p for p in ordered if p.id == self._current.id]
        return mine + [p for p in ordered if p.id != self._current.id]

    def is_participant_live(self, participant: Participant, now: datetime | None = None) -> bool:
        """Seen within the presence threshold."""
        now = now or self._clock()
        return now - participant.last_seen < timedelta(seconds=self._config.presence_threshold)

    def live_participants(self, now: datetime | None = None) -> list[Participant]:
        now = now or self._clock()
        return [p for p in self.participants if self.is_participant_live(p, now)]

    # -- join / leave ------------------------------------------------------

    async def join_room(self, code: str) -> JoinResult:
        """Join the room with share code *code*.

        Rejoining from the same device reactivates the participant stored
        for this room instead of creating a second one.

        Raises:
            AlreadyInProgressError: Another join is still in flight.
            IdentityRequiredError: No display name is set.
            RoomNotFoundError: No room has this code.
            JoinFailedError: The store rejected a read or write.
        """
        if self._joining:
            raise AlreadyInProgressError("Already joining a room")
        display_name = self._identity.display_name
        if not display_name:
            raise IdentityRequiredError("Please enter your name to join")
        code = normalize_code(code)

        self._joining = True
        try:
            if self._room is not None:
                await self.leave_room()

            try:
                room = await self._store.get_room_by_code(code)
            except PersistenceError as exc:
                raise JoinFailedError("Failed to join room") from exc
            if room is None:
                raise RoomNotFoundError(f"Room not found: {code}")

            try:
                state = await self._store.get_room_state(room.id)
                if state is None:
                    raise PersistenceError(f"room {room.id} has no state row")
                participant = await self._reactivate(room)
                if participant is None:
                    participant = await self._create_participant(room, display_name)
                participants = await self._store.list_participants(room.id)
            except PersistenceError as exc:
                logger.warning("Join of room %s failed: %s", code, exc, extra={"room_id": room.id})
                raise JoinFailedError("Failed to join room") from exc

            self._room = room
            self._current = participant
            self._participants = {p.id: p for p in participants}
            self._participants[participant.id] = participant
            self.dnd_enabled_at = None
            await self._state_sync.attach(room.id, state)
            await self._subscribe(room.id)
            self._start_heartbeat()
            logger.info(
                "Joined room %s as %s", room.code, participant.id, extra={"room_id": room.id}
            )
            self._notify()
            return JoinResult(
                room=room, state=state, participant=participant, participants=self.participants
            )
        finally:
            self._joining = False

    async def _reactivate(self, room: Room) -> Participant | None:
        stored_id = self._storage.get_item(participant_key(room.id))
        if stored_id is None:
            return None
        existing = await self._store.get_participant(room.id, stored_id)
        if existing is None:
            self._storage.remove_item(participant_key(room.id))
            return None
        changes: dict[str, Any] = {"is_active": True, "last_seen": self._clock()}
        user = self._identity.user
        if user is not None:
            changes["user_id"] = user.id
        # The per-room name the participant picked earlier is kept.
        return await self._store.update_participant(existing.id, changes)

    async def _create_participant(self, room: Room, name: str) -> Participant:
        user = self._identity.user
        now = self._clock()
        participant = await self._store.add_participant(
            Participant(
                room_id=room.id,
                user_id=user.id if user is not None else None,
                name=name,
                last_seen=now,
                created_at=now,
            )
        )
        self._storage.set_item(participant_key(room.id), participant.id)
        return participant

    async def _subscribe(self, room_id: str) -> None:
        self._subscriptions = [
            await self._feed.subscribe_to_room(
                Table.ROOMS,
                room_id,
                self._on_room_change,
                events={ChangeType.UPDATE},
                on_gap=self._reload_room,
            ),
            await self._feed.subscribe_to_room(
                Table.PARTICIPANTS,
                room_id,
                self._on_participant_change,
                on_gap=self._reload_participants,
            ),
        ]

    async def leave_room(self) -> None:
        """Mark the current participant inactive and drop all room caches."""
        current = self._current
        if current is not None:
            try:
                await self._store.update_participant(current.id, {"is_active": False})
            except PersistenceError:
                logger.warning("Could not mark participant %s inactive", current.id)

        await self._stop_heartbeat()
        for sub_id in self._subscriptions:
            await self._feed.unsubscribe(sub_id)
        self._subscriptions = []
        await self._state_sync.detach()

        had_room = self._room is not None
        self._room = None
        self._current = None
        self._participants = {}
        self.dnd_enabled_at = None
        if had_room:
            logger.info("Left room")
            self._notify()

    # -- presence ----------------------------------------------------------

    async def update_presence(self) -> None:
        """Refresh ``last_seen``. Failures are logged and dropped."""
        if self._current is None:
            return
        try:
            row = await self._store.update_participant(
                self._current.id, {"last_seen": self._clock()}
            )
        except PersistenceError:
            logger.warning("Presence heartbeat failed for %s", self._current.id)
            return
        self._apply_participant(row)

    def _start_heartbeat(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat(), name="presence")

    async def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._heartbeat_task
            self._heartbeat_task = None

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._config.heartbeat_interval)
            try:
                await self.update_presence()
            except Exception:
                logger.exception("Presence heartbeat failed")

    # -- single-row updates --------------------------------------------------

    def _require_participant(self) -> Participant:
        if self._current is None:
            raise NotJoinedError("Not in a room")
        return self._current

    async def update_current_participant(self, changes: Mapping[str, Any]) -> Participant:
        current = self._require_participant()
        row = await self._store.update_participant(current.id, changes)
        self._apply_participant(row)
        return row

    async def update_room_name(self, name: str | None) -> Room:
        if self._room is None:
            raise NotJoinedError("Not in a room")
        room = await self._store.update_room(self._room.id, {"name": (name or "").strip() or None})
        self._room = room
        self._notify()
        return room

    async def update_participant_name(self, name: str) -> Participant:
        return await self.update_current_participant({"name": normalize_name(name)})

    async def toggle_do_not_disturb(self) -> bool:
        """Flip DND for the current participant and return the new value."""
        current = self._require_participant()
        enabled = not current.do_not_disturb
        await self.update_current_participant({"do_not_disturb": enabled})
        self.dnd_enabled_at = self._clock() if enabled else None
        self._notify()
        return enabled

    async def toggle_break(self) -> bool:
        current = self._require_participant()
        on_break = not current.on_break
        await self.update_current_participant(
            {"on_break": on_break, "break_started_at": self._clock() if on_break else None}
        )
        return on_break

    async def set_current_task(self, task_id: str | None) -> Participant:
        return await self.update_current_participant({"current_task_id": task_id})

    async def update_background(self, background_id: str) -> None:
        """Pick the room background. Store failures are logged and dropped."""
        if not is_known_background(background_id):
            raise ValidationFailedError(f"Unknown background: {background_id}")
        if self._room is None:
            raise NotJoinedError("Not in a room")
        try:
            await self._state_sync.set_background(background_id)
        except PersistenceError:
            logger.warning("Background update failed for room %s", self._room.id)

    # -- push reconciliation -------------------------------------------------

    def _apply_participant(self, participant: Participant) -> None:
        if participant.is_active:
            self._participants[participant.id] = participant
        else:
            self._participants.pop(participant.id, None)
        if self._current is not None and participant.id == self._current.id:
            self._current = participant
        self._notify()

    async def _on_room_change(self, event: ChangeEvent) -> None:
        if self._room is None or event.new is None or event.new.get("id") != self._room.id:
            return
        try:
            self._room = Room.model_validate(event.new)
        except ValidationError:
            logger.warning("Ignoring malformed room push for %s", self._room.id)
            return
        self._notify()

    async def _on_participant_change(self, event: ChangeEvent) -> None:
        if self._room is None or event.record.get("room_id") != self._room.id:
            return
        if event.type == ChangeType.DELETE:
            if event.old is not None and self._participants.pop(event.old.get("id"), None):
                self._notify()
            return
        try:
            participant = Participant.model_validate(event.new)
        except ValidationError:
            logger.warning("Ignoring malformed participant push in room %s", self._room.id)
            return
        self._apply_participant(participant)

    async def _reload_room(self) -> None:
        if self._room is None:
            return
        try:
            room = await self._store.get_room(self._room.id)
        except PersistenceError:
            logger.warning("Could not refetch room %s", self._room.id)
            return
        if room is not None and self._room is not None and room.id == self._room.id:
            self._room = room
            self._notify()

    async def _reload_participants(self) -> None:
        room = self._room
        if room is None:
            return
        try:
            rows = await self._store.list_participants(room.id)
        except PersistenceError:
            logger.warning("Could not refetch participants of room %s", room.id)
            return
        if self._room is None or self._room.id != room.id:
            return
        self._participants = {p.id: p for p in rows}
        if self._current is not None:
            self._current = self._participants.get(self._current.id, self._current)
        self._notify()
