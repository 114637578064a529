"""PostgreSQL implementation of RoomStore using asyncpg."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from studyroom.core.errors import PersistenceError, RoomCodeTakenError
from studyroom.models.enums import ChangeType, Table
from studyroom.models.message import Message
from studyroom.models.participant import Participant
from studyroom.models.room import Room, RoomState
from studyroom.models.task import Task
from studyroom.realtime.base import ChangeFeed
from studyroom.store.base import UPDATABLE_FIELDS, RoomStore, apply_changes

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS rooms (
    id TEXT PRIMARY KEY,
    code TEXT NOT NULL UNIQUE,
    name TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS room_state (
    room_id TEXT PRIMARY KEY REFERENCES rooms(id) ON DELETE CASCADE,
    running BOOLEAN NOT NULL DEFAULT false,
    started_at TIMESTAMPTZ,
    phase TEXT NOT NULL DEFAULT 'focus',
    focus_seconds INTEGER NOT NULL DEFAULT 1500,
    break_seconds INTEGER NOT NULL DEFAULT 300,
    background_id TEXT,
    CHECK (running = (started_at IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS participants (
    id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    user_id TEXT,
    name TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT true,
    do_not_disturb BOOLEAN NOT NULL DEFAULT false,
    last_seen TIMESTAMPTZ NOT NULL DEFAULT now(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    on_break BOOLEAN NOT NULL DEFAULT false,
    break_started_at TIMESTAMPTZ,
    current_task_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_participants_room_id ON participants(room_id);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    participant_id TEXT NOT NULL REFERENCES participants(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    done BOOLEAN NOT NULL DEFAULT false,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_tasks_room_id ON tasks(room_id);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    room_id TEXT NOT NULL REFERENCES rooms(id) ON DELETE CASCADE,
    participant_id TEXT NOT NULL REFERENCES participants(id) ON DELETE CASCADE,
    content TEXT NOT NULL,
    message_type TEXT NOT NULL DEFAULT 'user',
    created_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS idx_messages_room_created ON messages(room_id, created_at DESC);
"""


def _columns(model: Any) -> dict[str, Any]:
    return dict(model.model_dump())


class PostgresStore(RoomStore):
    """PostgreSQL-backed room store using asyncpg.

    Writes are published to the attached change feed after they commit.
    Driver and connection errors surface as ``PersistenceError``.
    """

    def __init__(
        self,
        dsn: str | None = None,
        pool: Any = None,
        feed: ChangeFeed | None = None,
    ) -> None:
        super().__init__(feed)
        try:
            import asyncpg as _asyncpg
        except ImportError as exc:
            raise ImportError(
                "asyncpg is required for PostgresStore. "
                "Install it with: pip install studyroom[postgres]"
            ) from exc
        self._asyncpg = _asyncpg
        self._dsn = dsn
        self._pool = pool
        self._owns_pool = pool is None

    async def init(self, min_size: int = 2, max_size: int = 10) -> None:
        """Create the connection pool (if needed) and ensure schema exists."""
        if self._pool is None:
            self._pool = await self._asyncpg.create_pool(
                self._dsn,
                min_size=min_size,
                max_size=max_size,
            )
        async with self._connection("schema setup") as conn:
            await conn.execute(_SCHEMA)

    async def close(self) -> None:
        """Release the connection pool if we own it."""
        if self._pool is not None and self._owns_pool:
            await self._pool.close()
            self._pool = None

    async def __aenter__(self) -> PostgresStore:
        await self.init()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _connection(self, action: str) -> AsyncIterator[Any]:
        """Acquire a pooled connection, mapping driver errors to PersistenceError."""
        if self._pool is None:
            raise PersistenceError(f"{action} failed: store is not initialized")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except (self._asyncpg.PostgresError, self._asyncpg.InterfaceError, OSError) as exc:
            raise PersistenceError(f"{action} failed: {exc}") from exc

    async def _fetchrow(self, action: str, query: str, *args: Any) -> Any:
        async with self._connection(action) as conn:
            return await conn.fetchrow(query, *args)

    async def _fetch(self, action: str, query: str, *args: Any) -> list[Any]:
        async with self._connection(action) as conn:
            return await conn.fetch(query, *args)

    async def _insert(self, table: Table, row: dict[str, Any]) -> None:
        names = list(row)
        placeholders = ", ".join(f"${i}" for i in range(1, len(names) + 1))
        async with self._connection(f"insert into {table}") as conn:
            await conn.execute(
                f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                *row.values(),
            )

    async def _update(
        self, table: Table, key: str, key_value: str, changes: Mapping[str, Any]
    ) -> None:
        names = [n for n in changes if n in UPDATABLE_FIELDS[table]]
        if not names:
            return
        assignments = ", ".join(f"{n} = ${i}" for i, n in enumerate(names, start=2))
        async with self._connection(f"update of {table}") as conn:
            await conn.execute(
                f"UPDATE {table} SET {assignments} WHERE {key} = $1",
                key_value,
                *(changes[n] for n in names),
            )

    # ── Room operations ──────────────────────────────────────────

    async def create_room_with_state(self, code: str, name: str | None = None) -> str:
        room = Room(code=code.lower(), name=name)
        state = RoomState(room_id=room.id)
        async with self._connection("room creation") as conn:
            try:
                async with conn.transaction():
                    await conn.execute(
                        "INSERT INTO rooms (id, code, name, created_at) VALUES ($1, $2, $3, $4)",
                        room.id,
                        room.code,
                        room.name,
                        room.created_at,
                    )
                    await conn.execute(
                        "INSERT INTO room_state (room_id, phase, focus_seconds, break_seconds) "
                        "VALUES ($1, $2, $3, $4)",
                        state.room_id,
                        state.phase.value,
                        state.focus_seconds,
                        state.break_seconds,
                    )
            except self._asyncpg.UniqueViolationError as exc:
                raise RoomCodeTakenError(f"room code {room.code!r} already exists") from exc
        await self._emit(Table.ROOMS, ChangeType.INSERT, new=room)
        await self._emit(Table.ROOM_STATE, ChangeType.INSERT, new=state)
        return room.id

    async def get_room(self, room_id: str) -> Room | None:
        row = await self._fetchrow("room lookup", "SELECT * FROM rooms WHERE id = $1", room_id)
        return Room.model_validate(dict(row)) if row is not None else None

    async def get_room_by_code(self, code: str) -> Room | None:
        row = await self._fetchrow(
            "room lookup", "SELECT * FROM rooms WHERE code = $1", code.lower()
        )
        return Room.model_validate(dict(row)) if row is not None else None

    async def update_room(self, room_id: str, changes: Mapping[str, Any]) -> Room:
        old = await self.get_room(room_id)
        if old is None:
            raise PersistenceError(f"room {room_id} does not exist")
        room = apply_changes(Table.ROOMS, old, changes)
        await self._update(Table.ROOMS, "id", room_id, changes)
        await self._emit(Table.ROOMS, ChangeType.UPDATE, new=room, old=old)
        return room

    # ── Room state operations ────────────────────────────────────

    async def get_room_state(self, room_id: str) -> RoomState | None:
        row = await self._fetchrow(
            "room_state lookup", "SELECT * FROM room_state WHERE room_id = $1", room_id
        )
        return RoomState.model_validate(dict(row)) if row is not None else None

    async def update_room_state(self, room_id: str, changes: Mapping[str, Any]) -> RoomState:
        old = await self.get_room_state(room_id)
        if old is None:
            raise PersistenceError(f"room state for {room_id} does not exist")
        state = apply_changes(Table.ROOM_STATE, old, changes)
        await self._update(Table.ROOM_STATE, "room_id", room_id, changes)
        # Another writer may have touched other columns; return what is stored.
        stored = await self.get_room_state(room_id) or state
        await self._emit(Table.ROOM_STATE, ChangeType.UPDATE, new=stored, old=old)
        return stored

    # ── Participant operations ───────────────────────────────────

    async def add_participant(self, participant: Participant) -> Participant:
        await self._insert(Table.PARTICIPANTS, _columns(participant))
        await self._emit(Table.PARTICIPANTS, ChangeType.INSERT, new=participant)
        return participant

    async def get_participant(self, room_id: str, participant_id: str) -> Participant | None:
        row = await self._fetchrow(
            "participant lookup",
            "SELECT * FROM participants WHERE id = $1 AND room_id = $2",
            participant_id,
            room_id,
        )
        return Participant.model_validate(dict(row)) if row is not None else None

    async def update_participant(
        self, participant_id: str, changes: Mapping[str, Any]
    ) -> Participant:
        row = await self._fetchrow(
            "participant lookup", "SELECT * FROM participants WHERE id = $1", participant_id
        )
        if row is None:
            raise PersistenceError(f"participant {participant_id} does not exist")
        old = Participant.model_validate(dict(row))
        participant = apply_changes(Table.PARTICIPANTS, old, changes)
        await self._update(Table.PARTICIPANTS, "id", participant_id, changes)
        await self._emit(Table.PARTICIPANTS, ChangeType.UPDATE, new=participant, old=old)
        return participant

    async def list_participants(
        self, room_id: str, active_only: bool = True
    ) -> list[Participant]:
        query = "SELECT * FROM participants WHERE room_id = $1"
        if active_only:
            query += " AND is_active"
        rows = await self._fetch(
            "participant listing", query + " ORDER BY created_at, id", room_id
        )
        return [Participant.model_validate(dict(r)) for r in rows]

    # ── Task operations ──────────────────────────────────────────

    async def add_task(self, task: Task) -> Task:
        await self._insert(Table.TASKS, _columns(task))
        await self._emit(Table.TASKS, ChangeType.INSERT, new=task)
        return task

    async def list_tasks(self, room_id: str) -> list[Task]:
        rows = await self._fetch(
            "task listing",
            "SELECT * FROM tasks WHERE room_id = $1 ORDER BY sort_order, created_at",
            room_id,
        )
        return [Task.model_validate(dict(r)) for r in rows]

    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        row = await self._fetchrow("task lookup", "SELECT * FROM tasks WHERE id = $1", task_id)
        if row is None:
            raise PersistenceError(f"task {task_id} does not exist")
        old = Task.model_validate(dict(row))
        task = apply_changes(Table.TASKS, old, changes)
        await self._update(Table.TASKS, "id", task_id, changes)
        await self._emit(Table.TASKS, ChangeType.UPDATE, new=task, old=old)
        return task

    async def delete_task(self, task_id: str) -> bool:
        row = await self._fetchrow(
            "task deletion", "DELETE FROM tasks WHERE id = $1 RETURNING *", task_id
        )
        if row is None:
            return False
        await self._emit(Table.TASKS, ChangeType.DELETE, old=Task.model_validate(dict(row)))
        return True

    # ── Message operations ───────────────────────────────────────

    async def add_message(self, message: Message) -> Message:
        await self._insert(Table.MESSAGES, _columns(message))
        await self._emit(Table.MESSAGES, ChangeType.INSERT, new=message)
        return message

    async def list_messages(
        self,
        room_id: str,
        before: datetime | None = None,
        limit: int = 100,
    ) -> list[Message]:
        if before is None:
            rows = await self._fetch(
                "message listing",
                "SELECT * FROM messages WHERE room_id = $1 ORDER BY created_at DESC LIMIT $2",
                room_id,
                limit,
            )
        else:
            rows = await self._fetch(
                "message listing",
                "SELECT * FROM messages WHERE room_id = $1 AND created_at < $2 "
                "ORDER BY created_at DESC LIMIT $3",
                room_id,
                before,
                limit,
            )
        return [Message.model_validate(dict(r)) for r in rows]
