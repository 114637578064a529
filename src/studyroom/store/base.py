"""Abstract base class for the room row store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from studyroom.core.errors import PersistenceError
from studyroom.models.enums import ChangeType, Table
from studyroom.models.message import Message
from studyroom.models.participant import Participant
from studyroom.models.room import Room, RoomState
from studyroom.models.task import Task
from studyroom.realtime.base import ChangeEvent, ChangeFeed

# Columns a client may write through a partial update, per table.
UPDATABLE_FIELDS: dict[Table, frozenset[str]] = {
    Table.ROOMS: frozenset({"name"}),
    Table.ROOM_STATE: frozenset(
        {"running", "started_at", "phase", "focus_seconds", "break_seconds", "background_id"}
    ),
    Table.PARTICIPANTS: frozenset(
        {
            "user_id",
            "name",
            "is_active",
            "do_not_disturb",
            "last_seen",
            "on_break",
            "break_started_at",
            "current_task_id",
        }
    ),
    Table.TASKS: frozenset({"content", "done", "sort_order"}),
}

M = TypeVar("M", bound=BaseModel)


def apply_changes(table: Table, current: M, changes: Mapping[str, Any]) -> M:
    """Return *current* with *changes* applied, re-validated as a whole row."""
    unknown = set(changes) - UPDATABLE_FIELDS[table]
    if unknown:
        raise PersistenceError(f"cannot update {', '.join(sorted(unknown))} on {table}")
    try:
        return type(current).model_validate({**current.model_dump(), **changes})
    except ValidationError as exc:
        raise PersistenceError(f"rejected update on {table}: {exc}") from exc


def to_row(model: BaseModel) -> dict[str, Any]:
    """Serialize a model to the JSON-compatible row shape the change feed carries."""
    return model.model_dump(mode="json")


class RoomStore(ABC):
    """Persistent storage for rooms, room state, participants, tasks and messages.

    Implement this ABC to plug in any storage backend. Every write returns the
    affected row and, when a ``ChangeFeed`` is attached, publishes the change
    so that other clients can reconcile their caches.

    The library ships with ``InMemoryStore`` for development and testing and
    ``PostgresStore`` for production use.
    """

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self.feed = feed

    async def _emit(
        self,
        table: Table,
        change: ChangeType,
        new: BaseModel | None = None,
        old: BaseModel | None = None,
    ) -> None:
        if self.feed is None:
            return
        await self.feed.publish(
            ChangeEvent(
                table=table,
                type=change,
                new=to_row(new) if new is not None else None,
                old=to_row(old) if old is not None else None,
            )
        )

    # Room operations

    @abstractmethod
    async def create_room_with_state(self, code: str, name: str | None = None) -> str:
        """Atomically create a room and its state row. Returns the new room id.

        Raises:
            RoomCodeTakenError: If the code is already taken.
        """
        ...

    @abstractmethod
    async def get_room(self, room_id: str) -> Room | None:
        """Get a room by ID, or ``None`` if it doesn't exist."""
        ...

    @abstractmethod
    async def get_room_by_code(self, code: str) -> Room | None:
        """Get a room by its share code (case-insensitive)."""
        ...

    @abstractmethod
    async def update_room(self, room_id: str, changes: Mapping[str, Any]) -> Room:
        """Write the given room fields and return the updated row."""
        ...

    # Room state operations

    @abstractmethod
    async def get_room_state(self, room_id: str) -> RoomState | None:
        """Get the shared state row of a room."""
        ...

    @abstractmethod
    async def update_room_state(self, room_id: str, changes: Mapping[str, Any]) -> RoomState:
        """Write only the given state fields and return the updated row."""
        ...

    # Participant operations

    @abstractmethod
    async def add_participant(self, participant: Participant) -> Participant:
        """Insert a participant."""
        ...

    @abstractmethod
    async def get_participant(self, room_id: str, participant_id: str) -> Participant | None:
        """Get a participant by ID within a room."""
        ...

    @abstractmethod
    async def update_participant(
        self, participant_id: str, changes: Mapping[str, Any]
    ) -> Participant:
        """Write the given participant fields and return the updated row."""
        ...

    @abstractmethod
    async def list_participants(
        self, room_id: str, active_only: bool = True
    ) -> list[Participant]:
        """List participants ordered by ``(created_at, id)``."""
        ...

    # Task operations

    @abstractmethod
    async def add_task(self, task: Task) -> Task:
        """Insert a task."""
        ...

    @abstractmethod
    async def list_tasks(self, room_id: str) -> list[Task]:
        """List a room's tasks ordered by ``(sort_order, created_at)``."""
        ...

    @abstractmethod
    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> Task:
        """Write the given task fields and return the updated row."""
        ...

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """Delete a task. Returns ``True`` if the task existed."""
        ...

    # Message operations

    @abstractmethod
    async def add_message(self, message: Message) -> Message:
        """Append a message."""
        ...

    @abstractmethod
    async def list_messages(
        self,
        room_id: str,
        before: datetime | None = None,
        limit: int = 100,
    ) -> list[Message]:
        """List messages newest first, strictly older than *before* if given."""
        ...

    async def close(self) -> None:
        """Release resources. The default implementation does nothing."""
        return None
