"""Tests for InMemoryStore."""

from __future__ import annotations

from datetime import timedelta

import pytest

from studyroom.core.errors import PersistenceError, RoomCodeTakenError
from studyroom.models.enums import ChangeType, Table
from studyroom.models.message import Message
from studyroom.models.participant import Participant
from studyroom.models.room import Room
from studyroom.models.task import Task
from studyroom.realtime.base import ChangeEvent
from studyroom.store.base import RoomStore
from studyroom.store.memory import InMemoryStore

from tests.conftest import T0


class TestRoomOperations:
    async def test_create_room_with_state(self, store: InMemoryStore) -> None:
        room_id = await store.create_room_with_state("abcd1234", "Library")
        room = await store.get_room(room_id)
        state = await store.get_room_state(room_id)

        assert room is not None
        assert room.code == "abcd1234"
        assert room.name == "Library"
        assert state is not None
        assert state.room_id == room_id
        assert state.running is False

    async def test_duplicate_code_rejected(self, store: InMemoryStore) -> None:
        await store.create_room_with_state("abcd1234")
        with pytest.raises(RoomCodeTakenError):
            await store.create_room_with_state("ABCD1234")

    async def test_code_taken_is_persistence_error(self) -> None:
        assert issubclass(RoomCodeTakenError, PersistenceError)

    async def test_get_by_code_is_case_insensitive(self, store: InMemoryStore, room: Room) -> None:
        found = await store.get_room_by_code("ABCD1234")
        assert found is not None
        assert found.id == room.id
        assert await store.get_room_by_code("zzzz9999") is None

    async def test_update_room_name(self, store: InMemoryStore, room: Room) -> None:
        updated = await store.update_room(room.id, {"name": "Night owls"})
        assert updated.name == "Night owls"
        assert updated.code == room.code

    async def test_update_room_rejects_code_change(self, store: InMemoryStore, room: Room) -> None:
        with pytest.raises(PersistenceError):
            await store.update_room(room.id, {"code": "newcode1"})

    async def test_update_missing_room(self, store: InMemoryStore) -> None:
        with pytest.raises(PersistenceError):
            await store.update_room("missing", {"name": "x"})

    async def test_returned_rows_are_copies(self, store: InMemoryStore, room: Room) -> None:
        fetched = await store.get_room(room.id)
        assert fetched is not None
        fetched.name = "mutated"
        again = await store.get_room(room.id)
        assert again is not None
        assert again.name == "Library"


class TestRoomStateOperations:
    async def test_partial_update_keeps_other_columns(
        self, store: InMemoryStore, room: Room
    ) -> None:
        await store.update_room_state(room.id, {"background_id": "video-3"})
        state = await store.update_room_state(room.id, {"focus_seconds": 600})
        assert state.background_id == "video-3"
        assert state.focus_seconds == 600

    async def test_running_without_started_at_rejected(
        self, store: InMemoryStore, room: Room
    ) -> None:
        with pytest.raises(PersistenceError):
            await store.update_room_state(room.id, {"running": True})
        state = await store.get_room_state(room.id)
        assert state is not None
        assert state.running is False

    async def test_start_and_stop(self, store: InMemoryStore, room: Room) -> None:
        started = await store.update_room_state(room.id, {"running": True, "started_at": T0})
        assert started.running is True
        assert started.started_at == T0
        stopped = await store.update_room_state(room.id, {"running": False, "started_at": None})
        assert stopped.started_at is None

    async def test_unknown_field_rejected(self, store: InMemoryStore, room: Room) -> None:
        with pytest.raises(PersistenceError):
            await store.update_room_state(room.id, {"elapsed": 10})


class TestParticipantOperations:
    async def test_add_and_get(self, store: InMemoryStore, room: Room) -> None:
        p = await store.add_participant(Participant(room_id=room.id, name="Alice"))
        fetched = await store.get_participant(room.id, p.id)
        assert fetched is not None
        assert fetched.name == "Alice"

    async def test_get_from_other_room(self, store: InMemoryStore, room: Room) -> None:
        p = await store.add_participant(Participant(room_id=room.id, name="Alice"))
        assert await store.get_participant("other-room", p.id) is None

    async def test_add_to_missing_room(self, store: InMemoryStore) -> None:
        with pytest.raises(PersistenceError):
            await store.add_participant(Participant(room_id="missing", name="Alice"))

    async def test_list_active_in_join_order(self, store: InMemoryStore, room: Room) -> None:
        late = await store.add_participant(
            Participant(room_id=room.id, name="Late", created_at=T0 + timedelta(minutes=5))
        )
        early = await store.add_participant(
            Participant(room_id=room.id, name="Early", created_at=T0)
        )
        gone = await store.add_participant(
            Participant(room_id=room.id, name="Gone", created_at=T0 + timedelta(minutes=1))
        )
        await store.update_participant(gone.id, {"is_active": False})

        active = await store.list_participants(room.id)
        everyone = await store.list_participants(room.id, active_only=False)

        assert [p.id for p in active] == [early.id, late.id]
        assert [p.id for p in everyone] == [early.id, gone.id, late.id]

    async def test_equal_created_at_sorted_by_id(self, store: InMemoryStore, room: Room) -> None:
        b = await store.add_participant(
            Participant(id="b", room_id=room.id, name="Bee", created_at=T0)
        )
        a = await store.add_participant(
            Participant(id="a", room_id=room.id, name="Ay", created_at=T0)
        )
        assert [p.id for p in await store.list_participants(room.id)] == [a.id, b.id]


class TestTaskOperations:
    async def test_list_ordered_by_sort_order(self, store: InMemoryStore, room: Room) -> None:
        p = await store.add_participant(Participant(room_id=room.id, name="Alice"))
        second = await store.add_task(
            Task(room_id=room.id, participant_id=p.id, content="b", sort_order=1)
        )
        first = await store.add_task(
            Task(room_id=room.id, participant_id=p.id, content="a", sort_order=0)
        )
        assert [t.id for t in await store.list_tasks(room.id)] == [first.id, second.id]

    async def test_update_and_delete(self, store: InMemoryStore, room: Room) -> None:
        p = await store.add_participant(Participant(room_id=room.id, name="Alice"))
        task = await store.add_task(Task(room_id=room.id, participant_id=p.id, content="a"))

        updated = await store.update_task(task.id, {"done": True})
        assert updated.done is True
        assert await store.delete_task(task.id) is True
        assert await store.delete_task(task.id) is False
        assert await store.list_tasks(room.id) == []

    async def test_task_needs_participant(self, store: InMemoryStore, room: Room) -> None:
        with pytest.raises(PersistenceError):
            await store.add_task(Task(room_id=room.id, participant_id="nobody", content="a"))

    async def test_update_missing_task(self, store: InMemoryStore) -> None:
        with pytest.raises(PersistenceError):
            await store.update_task("missing", {"done": True})


class TestMessageOperations:
    async def _seed(self, store: InMemoryStore, room: Room, count: int) -> list[Message]:
        p = await store.add_participant(Participant(room_id=room.id, name="Alice"))
        return [
            await store.add_message(
                Message(
                    room_id=room.id,
                    participant_id=p.id,
                    content=f"m{i}",
                    created_at=T0 + timedelta(seconds=i),
                )
            )
            for i in range(count)
        ]

    async def test_newest_first_with_limit(self, store: InMemoryStore, room: Room) -> None:
        await self._seed(store, room, 5)
        page = await store.list_messages(room.id, limit=3)
        assert [m.content for m in page] == ["m4", "m3", "m2"]

    async def test_before_is_strict(self, store: InMemoryStore, room: Room) -> None:
        messages = await self._seed(store, room, 5)
        page = await store.list_messages(room.id, before=messages[2].created_at)
        assert [m.content for m in page] == ["m1", "m0"]

    async def test_message_to_missing_room(self, store: InMemoryStore) -> None:
        with pytest.raises(PersistenceError):
            await store.add_message(Message(room_id="missing", participant_id="p", content="x"))


class TestChangeEvents:
    async def test_writes_are_published(self, store: InMemoryStore, advance) -> None:
        assert store.feed is not None
        received: list[ChangeEvent] = []

        async def callback(event: ChangeEvent) -> None:
            received.append(event)

        await store.feed.subscribe(Table.ROOM_STATE, callback)
        room_id = await store.create_room_with_state("abcd1234")
        await store.update_room_state(room_id, {"background_id": "video-2"})
        await advance()

        assert [e.type for e in received] == [ChangeType.INSERT, ChangeType.UPDATE]
        update = received[1]
        assert update.new is not None and update.old is not None
        assert update.new["background_id"] == "video-2"
        assert update.old["background_id"] is None

    async def test_delete_carries_old_row(self, store: InMemoryStore, room: Room, advance) -> None:
        assert store.feed is not None
        received: list[ChangeEvent] = []

        async def callback(event: ChangeEvent) -> None:
            received.append(event)

        p = await store.add_participant(Participant(room_id=room.id, name="Alice"))
        task = await store.add_task(Task(room_id=room.id, participant_id=p.id, content="a"))
        await store.feed.subscribe_to_room(
            Table.TASKS, room.id, callback, events={ChangeType.DELETE}
        )
        await store.delete_task(task.id)
        await advance()

        assert len(received) == 1
        assert received[0].new is None
        assert received[0].old is not None
        assert received[0].old["id"] == task.id

    async def test_store_without_feed(self) -> None:
        store = InMemoryStore()
        room_id = await store.create_room_with_state("abcd1234")
        assert await store.get_room(room_id) is not None

    def test_is_abstract(self) -> None:
        with pytest.raises(TypeError):
            RoomStore()  # type: ignore[abstract]
