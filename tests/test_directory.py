"""Tests for room creation and share codes."""

from __future__ import annotations

import pytest

from studyroom.config import StudyRoomConfig
from studyroom.core.directory import (
    LANDING_PATH,
    ROOM_CODE_ALPHABET,
    RoomDirectory,
    generate_room_code,
    normalize_code,
    room_path,
)
from studyroom.core.errors import PersistenceError, RoomCodeTakenError, ValidationFailedError
from studyroom.store.memory import InMemoryStore


class CollidingStore(InMemoryStore):
    """Reports a code collision for the first *collisions* creations."""

    def __init__(self, collisions: int) -> None:
        super().__init__()
        self.collisions = collisions
        self.attempts = 0

    async def create_room_with_state(self, code: str, name: str | None = None) -> str:
        self.attempts += 1
        if self.attempts <= self.collisions:
            raise RoomCodeTakenError(code)
        return await super().create_room_with_state(code, name)


class TestCodes:
    def test_generated_code_shape(self) -> None:
        for _ in range(50):
            code = generate_room_code()
            assert len(code) == 8
            assert set(code) <= set(ROOM_CODE_ALPHABET)

    def test_custom_length(self) -> None:
        assert len(generate_room_code(12)) == 12

    def test_normalize(self) -> None:
        assert normalize_code("  AbCd1234 ") == "abcd1234"

    def test_normalize_empty(self) -> None:
        with pytest.raises(ValidationFailedError):
            normalize_code("   ")

    def test_paths(self) -> None:
        assert room_path("ABCD1234") == "/room/abcd1234"
        assert LANDING_PATH == "/"


class TestRoomDirectory:
    async def test_create_room(self) -> None:
        store = InMemoryStore()
        directory = RoomDirectory(store)

        room = await directory.create_room("  Library  ")

        assert room.name == "Library"
        assert len(room.code) == 8
        state = await store.get_room_state(room.id)
        assert state is not None
        assert state.running is False

    async def test_blank_name_is_none(self) -> None:
        room = await RoomDirectory(InMemoryStore()).create_room("   ")
        assert room.name is None

    async def test_code_length_from_config(self) -> None:
        directory = RoomDirectory(InMemoryStore(), StudyRoomConfig(room_code_length=6))
        assert len((await directory.create_room()).code) == 6

    async def test_retries_on_collision(self, caplog) -> None:
        store = CollidingStore(collisions=2)
        room = await RoomDirectory(store).create_room("Library")

        assert store.attempts == 3
        assert room.name == "Library"
        assert "collision" in caplog.text

    async def test_gives_up_after_three_collisions(self) -> None:
        store = CollidingStore(collisions=3)
        with pytest.raises(PersistenceError):
            await RoomDirectory(store).create_room()
        assert store.attempts == 3

    async def test_lookup_by_code(self) -> None:
        directory = RoomDirectory(InMemoryStore())
        room = await directory.create_room()

        found = await directory.get_room_by_code(room.code.upper())
        assert found is not None
        assert found.id == room.id
        assert await directory.get_room_by_code("nope0000") is None
