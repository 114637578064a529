"""Per-participant task lists."""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from studyroom.core._helpers import Clock, Observable, utcnow
from studyroom.core.errors import NotJoinedError, PersistenceError, ValidationFailedError
from studyroom.core.membership import RoomMembership
from studyroom.models.enums import ChangeType, Table
from studyroom.models.participant import Participant
from studyroom.models.task import Task
from studyroom.realtime.base import ChangeEvent, ChangeFeed
from studyroom.store.base import RoomStore

logger = logging.getLogger("studyroom.tasks")


def _ordered(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: (t.sort_order, t.created_at))


def _clean_content(content: str) -> str:
    content = content.strip()
    if not content:
        raise ValidationFailedError("Task content cannot be empty")
    return content


class TaskBoard(Observable):
    """Every participant's tasks in the joined room.

    Tasks are visible to everyone but only the owner edits them. Pushes are
    applied as targeted patches keyed by task id.
    """

    def __init__(
        self,
        store: RoomStore,
        feed: ChangeFeed,
        membership: RoomMembership,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__()
        self._store = store
        self._feed = feed
        self._membership = membership
        self._clock = clock
        self._tasks: dict[str, Task] = {}
        self._subscription: str | None = None
        self._editing: str | None = None
        self.is_loading = False

    @property
    def tasks(self) -> list[Task]:
        """All tasks ordered by ``(sort_order, created_at)``."""
        return _ordered(list(self._tasks.values()))

    def tasks_for(self, participant_id: str) -> list[Task]:
        return _ordered([t for t in self._tasks.values() if t.participant_id == participant_id])

    @property
    def my_tasks(self) -> list[Task]:
        current = self._membership.current_participant
        return self.tasks_for(current.id) if current is not None else []

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    # -- lifecycle -----------------------------------------------------------

    async def attach(self) -> None:
        room = self._membership.room
        if room is None:
            raise NotJoinedError("Not in a room")
        await self.detach()
        self._subscription = await self._feed.subscribe_to_room(
            Table.TASKS, room.id, self._on_change, on_gap=self.load
        )
        await self.load()

    async def detach(self) -> None:
        if self._subscription is not None:
            await self._feed.unsubscribe(self._subscription)
            self._subscription = None
        self._tasks = {}
        self._editing = None

    async def load(self) -> None:
        room = self._membership.room
        if room is None:
            return
        try:
            rows = await self._store.list_tasks(room.id)
        except PersistenceError:
            logger.exception("Failed to load tasks for room %s", room.id)
            return
        self._tasks = {t.id: t for t in rows}
        self._notify()

    async def _on_change(self, event: ChangeEvent) -> None:
        room = self._membership.room
        if room is None or event.record.get("room_id") != room.id:
            return
        if event.type == ChangeType.DELETE:
            task_id = (event.old or {}).get("id")
            if task_id is not None and self._tasks.pop(task_id, None) is not None:
                self._notify()
            return
        try:
            task = Task.model_validate(event.new)
        except ValidationError:
            logger.warning("Ignoring malformed task push in room %s", room.id)
            return
        if event.type == ChangeType.INSERT and task.id in self._tasks:
            return
        self._tasks[task.id] = task
        self._notify()

    # -- mutations -----------------------------------------------------------

    def _require_joined(self) -> tuple[str, Participant]:
        room = self._membership.room
        participant = self._membership.current_participant
        if room is None or participant is None:
            raise NotJoinedError("Not in a room")
        return room.id, participant

    def next_sort_order(self, participant_id: str) -> int:
        """One past the participant's highest ``sort_order``, or 0 for an empty list."""
        orders = [t.sort_order for t in self._tasks.values() if t.participant_id == participant_id]
        return max(orders) + 1 if orders else 0

    async def add_task(self, content: str) -> Task | None:
        """Append a task to the current participant's list.

        Returns ``None`` if the store rejects the insert.
        """
        content = _clean_content(content)
        room_id, participant = self._require_joined()
        self.is_loading = True
        try:
            task = await self._store.add_task(
                Task(
                    room_id=room_id,
                    participant_id=participant.id,
                    content=content,
                    sort_order=self.next_sort_order(participant.id),
                    created_at=self._clock(),
                )
            )
        except PersistenceError:
            logger.exception("Failed to add task")
            return None
        finally:
            self.is_loading = False
        self._tasks.setdefault(task.id, task)
        self._notify()
        return task

    async def update_task(
        self,
        task_id: str,
        *,
        content: str | None = None,
        done: bool | None = None,
    ) -> Task | None:
        changes: dict[str, object] = {}
        if content is not None:
            changes["content"] = _clean_content(content)
        if done is not None:
            changes["done"] = done
        if not changes:
            return self._tasks.get(task_id)
        return await self._write(task_id, changes)

    async def toggle_task(self, task_id: str) -> Task | None:
        """Flip ``done`` based on the cached row; the stored row wins afterwards."""
        task = self._tasks.get(task_id)
        if task is None:
            return None
        return await self._write(task_id, {"done": not task.done})

    async def _write(self, task_id: str, changes: dict[str, object]) -> Task | None:
        try:
            task = await self._store.update_task(task_id, changes)
        except PersistenceError:
            logger.exception("Failed to update task %s", task_id)
            return None
        self._tasks[task.id] = task
        self._notify()
        return task

    async def delete_task(self, task_id: str) -> bool:
        try:
            deleted = await self._store.delete_task(task_id)
        except PersistenceError:
            logger.exception("Failed to delete task %s", task_id)
            return False
        self._tasks.pop(task_id, None)
        if self._editing == task_id:
            self._editing = None
        self._notify()
        return deleted

    async def reorder_tasks(self, participant_id: str, ordered_ids: list[str]) -> None:
        """Give each listed task its index as ``sort_order``.

        Only *participant_id*'s tasks are touched. The cache changes first,
        then the rows are written concurrently; failed writes are logged and
        corrected by the next push or reload.
        """
        owned = {t.id for t in self._tasks.values() if t.participant_id == participant_id}
        ids = [task_id for task_id in ordered_ids if task_id in owned]
        for index, task_id in enumerate(ids):
            self._tasks[task_id] = self._tasks[task_id].model_copy(update={"sort_order": index})
        self._notify()

        results = await asyncio.gather(
            *(self._store.update_task(task_id, {"sort_order": i}) for i, task_id in enumerate(ids)),
            return_exceptions=True,
        )
        for task_id, result in zip(ids, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Reorder write failed for task %s: %s", task_id, result)

    async def set_current_task(self, task_id: str | None) -> None:
        """Point the current participant at one of their own tasks (or none)."""
        _, participant = self._require_joined()
        if task_id is not None:
            task = self._tasks.get(task_id)
            if task is None or task.participant_id != participant.id:
                raise ValidationFailedError("Only your own tasks can be the current task")
        await self._membership.set_current_task(task_id)

    # -- edit / drag exclusivity ----------------------------------------------

    def begin_edit(self, task_id: str) -> None:
        self._editing = task_id
        self._notify()

    def end_edit(self) -> None:
        self._editing = None
        self._notify()

    @property
    def editing_task_id(self) -> str | None:
        return self._editing

    def is_draggable(self, task_id: str) -> bool:
        """A task being edited inline cannot be dragged."""
        return task_id in self._tasks and task_id != self._editing
