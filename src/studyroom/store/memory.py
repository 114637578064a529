"""In-memory implementation of RoomStore."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from studyroom.core.errors import PersistenceError, RoomCodeTakenError
from studyroom.models.enums import ChangeType, Table
from studyroom.models.message import Message
from studyroom.models.participant import Participant
from studyroom.models.room import Room, RoomState
from studyroom.models.task import Task
from studyroom.realtime.base import ChangeFeed
from studyroom.store.base import RoomStore, apply_changes


class InMemoryStore(RoomStore):
    """Dict-based in-memory store for development and testing."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        super().__init__(feed)
        self._rooms: dict[str, Room] = {}
        self._codes: dict[str, str] = {}  # code -> room_id
        self._states: dict[str, RoomState] = {}
        self._participants: dict[str, Participant] = {}
        self._tasks: dict[str, Task] = {}
        self._messages: dict[str, Message] = {}
        self._room_messages: dict[str, list[str]] = {}

    # Room operations

    async def create_room_with_state(self, code: str, name: str | None = None) -> str:
        code = code.lower()
        if code in self._codes:
            raise RoomCodeTakenError(f"room code {code!r} already exists")
        room = Room(code=code, name=name)
        state = RoomState(room_id=room.id)
        self._rooms[room.id] = room
        self._codes[code] = room.id
        self._states[room.id] = state
        self._room_messages[room.id] = []
        await self._emit(Table.ROOMS, ChangeType.INSERT, new=room)
        await self._emit(Table.ROOM_STATE, ChangeType.INSERT, new=state)
        return room.id

    async def get_room(self, room_id: str) -> Room | None:
        room = self._rooms.get(room_id)
        return room.model_copy() if room is not None else None

    async def get_room_by_code(self, code: str) -> Room | None:
        room_id = self._codes.get(code.lower())
        return await self.get_room(room_id) if room_id is not None else None

    async def update_room(self, room_id: str, changes: Mapping[str, Any]) -> Room:
        old = self._rooms.get(room_id)
        if old is None:
            raise PersistenceError(f"room {room_id} does not exist")
        room = apply_changes(Table.ROOMS, old, changes)
        self._rooms[room_id] = room
        await self._emit(Table.ROOMS, ChangeType.UPDATE, new=room, old=old)
        return room.model_copy()

    # Room state operations

    async def get_room_state(self, room_id: str) -> RoomState | None:
        state = self._states.get(room_id)
        return state.model_copy() if state is not None else None

    async def update_room_state(self, room_id: str, changes: Mapping[str, Any]) -> RoomState:
        old = self._states.get(room_id)
        if old is None:
            raise PersistenceError(f"room state for {room_id} does not exist")
        state = apply_changes(Table.ROOM_STATE, old, changes)
        self._states[room_id] = state
        await self._emit(Table.ROOM_STATE, ChangeType.UPDATE, new=state, old=old)
        return state.model_copy()

    # Participant operations

    async def add_participant(self, participant: Participant) -> Participant:
        if participant.room_id not in self._rooms:
            raise PersistenceError(f"room {participant.room_id} does not exist")
        if participant.id in self._participants:
            raise PersistenceError(f"participant {participant.id} already exists")
        self._participants[participant.id] = participant
        await self._emit(Table.PARTICIPANTS, ChangeType.INSERT, new=participant)
        return participant.model_copy()

    async def get_participant(self, room_id: str, participant_id: str) -> Participant | None:
        participant = self._participants.get(participant_id)
        if participant is None or participant.room_id != room_id:
            return None
        return participant.model_copy()

    async def update_participant(
        self, participant_id: str, changes: Mapping[str, Any]
    ) -> Participant:
        old = self._participants.get(participant_id)
        if old is None:
            raise PersistenceError(f"participant {participant_id} does not exist")
        participant = apply_changes(Table.PARTICIPANTS, old, changes)
        self._participants[participant_id] = participant
        await self._emit(Table.PARTICIPANTS, ChangeType.UPDATE, new=participant, old=old)
        return participant.model_copy()

    async def list_participants(
        self, room_id: str, active_only: bool = True
    ) -> list[Participant]:
        rows = [
            p
            for p in self._participants.values()
            if p.room_id == room_id and (p.is_active or not active_only)
        ]
        rows.sort(key=lambda p: (p.created_at, p.id))
        return [p.model_copy() for p in rows]

    # Task operations

    async def add_task(self, task: Task) -> Task:
        if task.participant_id not in self._participants:
            raise PersistenceError(f"participant {task.participant_id} does not exist")
        self._tasks[task.id] = task
        await self._emit(Table.TASKS, ChangeType.INSERT, new=task)
        return task.model_copy()

    async def list_tasks(self, room_id: str) -> list[Task]:
        rows = [t for t in self._tasks.values() if t.room_id == room_id]
        rows.sort(key=lambda t: (t.sort_order, t.created_at))
        return [t.model_copy() for t in rows]

    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        old = self._tasks.get(task_id)
        if old is None:
            raise PersistenceError(f"task {task_id} does not exist")
        task = apply_changes(Table.TASKS, old, changes)
        self._tasks[task_id] = task
        await self._emit(Table.TASKS, ChangeType.UPDATE, new=task, old=old)
        return task.model_copy()

    async def delete_task(self, task_id: str) -> bool:
        old = self._tasks.pop(task_id, None)
        if old is None:
            return False
        await self._emit(Table.TASKS, ChangeType.DELETE, old=old)
        return True

    # Message operations

    async def add_message(self, message: Message) -> Message:
        if message.room_id not in self._rooms:
            raise PersistenceError(f"room {message.room_id} does not exist")
        self._messages[message.id] = message
        self._room_messages.setdefault(message.room_id, []).append(message.id)
        await self._emit(Table.MESSAGES, ChangeType.INSERT, new=message)
        return message.model_copy()

    async def list_messages(
        self,
        room_id: str,
        before: datetime | None = None,
        limit: int = 100,
    ) -> list[Message]:
        rows = [self._messages[mid] for mid in self._room_messages.get(room_id, [])]
        if before is not None:
            rows = [m for m in rows if m.created_at < before]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        return [m.model_copy() for m in rows[:limit]]
