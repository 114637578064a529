"""Tests for PostgresStore error mapping, using a fake pool instead of a server."""

from __future__ import annotations

from contextlib import asynccontextmanager

import pytest

from studyroom.core.errors import JoinFailedError, PersistenceError, RoomCodeTakenError
from studyroom.core.framework import StudyRoomClient
from studyroom.models.message import Message
from studyroom.models.participant import Participant

asyncpg = pytest.importorskip("asyncpg")


class FailingConnection:
    def __init__(self, exc: BaseException) -> None:
        self.exc = exc

    async def fetchrow(self, *args: object) -> None:
        raise self.exc

    async def fetch(self, *args: object) -> None:
        raise self.exc

    async def execute(self, *args: object) -> None:
        raise self.exc

    @asynccontextmanager
    async def transaction(self):
        yield


class FakePool:
    """Hands out connections whose every query raises *exc*."""

    def __init__(self, exc: BaseException) -> None:
        self.exc = exc

    @asynccontextmanager
    async def acquire(self):
        yield FailingConnection(self.exc)

    async def close(self) -> None:
        return None


DRIVER_ERRORS = [
    pytest.param(
        lambda: asyncpg.exceptions.ConnectionDoesNotExistError("connection lost"), id="interface"
    ),
    pytest.param(lambda: asyncpg.PostgresError("server error"), id="postgres"),
    pytest.param(lambda: ConnectionResetError("reset by peer"), id="os"),
]


def _store(exc: BaseException):
    from studyroom.store.postgres import PostgresStore

    return PostgresStore(pool=FakePool(exc))


class TestErrorMapping:
    @pytest.mark.parametrize("make_exc", DRIVER_ERRORS)
    async def test_reads_raise_persistence_error(self, make_exc) -> None:
        store = _store(make_exc())
        reads = [
            store.get_room("r1"),
            store.get_room_by_code("abcd1234"),
            store.get_room_state("r1"),
            store.get_participant("r1", "p1"),
            store.list_participants("r1"),
            store.list_tasks("r1"),
            store.list_messages("r1"),
            store.delete_task("t1"),
            store.update_participant("p1", {"last_seen": None}),
            store.update_task("t1", {"done": True}),
        ]
        for read in reads:
            with pytest.raises(PersistenceError):
                await read

    @pytest.mark.parametrize("make_exc", DRIVER_ERRORS)
    async def test_writes_raise_persistence_error(self, make_exc) -> None:
        store = _store(make_exc())
        with pytest.raises(PersistenceError):
            await store.add_participant(Participant(room_id="r1", name="Alice"))
        with pytest.raises(PersistenceError):
            await store.add_message(Message(room_id="r1", participant_id="p1", content="hi"))
        with pytest.raises(PersistenceError):
            await store.create_room_with_state("abcd1234")

    async def test_code_collision_is_room_code_taken(self) -> None:
        store = _store(asyncpg.exceptions.UniqueViolationError("duplicate key"))
        with pytest.raises(RoomCodeTakenError):
            await store.create_room_with_state("abcd1234")

    async def test_uninitialized_store(self) -> None:
        from studyroom.store.postgres import PostgresStore

        store = PostgresStore(dsn="postgresql://localhost/none")
        with pytest.raises(PersistenceError):
            await store.get_room("r1")


class TestJoinOverBrokenConnection:
    async def test_join_raises_join_failed(self) -> None:
        store = _store(asyncpg.exceptions.ConnectionDoesNotExistError("connection lost"))
        client = StudyRoomClient(store=store)
        client.identity.set_guest_name("Alice")

        with pytest.raises(JoinFailedError):
            await client.membership.join_room("abcd1234")
        assert client.membership.room is None
        assert client.membership.is_joining is False
        await client.close()
