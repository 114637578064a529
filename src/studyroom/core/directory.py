"""Room creation and lookup by share code."""

from __future__ import annotations

import logging
import secrets
import string

from studyroom.config import StudyRoomConfig
from studyroom.core.errors import PersistenceError, RoomCodeTakenError, ValidationFailedError
from studyroom.models.room import Room
from studyroom.store.base import RoomStore

logger = logging.getLogger("studyroom.directory")

ROOM_CODE_ALPHABET = string.ascii_lowercase + string.digits
LANDING_PATH = "/"
_MAX_CODE_ATTEMPTS = 3


def room_path(code: str) -> str:
    """Path of the room page for a share code."""
    return f"/room/{normalize_code(code)}"


def normalize_code(code: str) -> str:
    """Share codes are case-insensitive and stored lowercase."""
    code = code.strip().lower()
    if not code:
        raise ValidationFailedError("Please enter a room code")
    return code


def generate_room_code(length: int = 8) -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


class RoomDirectory:
    """Creates rooms and resolves share codes."""

    def __init__(self, store: RoomStore, config: StudyRoomConfig | None = None) -> None:
        self._store = store
        self._config = config or StudyRoomConfig()

    async def create_room(self, name: str | None = None) -> Room:
        """Create a room and its shared state in one store call.

        A colliding code is regenerated a few times; any other store failure
        propagates immediately.
        """
        name = (name or "").strip() or None
        room_id: str | None = None
        for attempt in range(1, _MAX_CODE_ATTEMPTS + 1):
            code = generate_room_code(self._config.room_code_length)
            try:
                room_id = await self._store.create_room_with_state(code, name)
                break
            except RoomCodeTakenError:
                logger.warning(
                    "Room code collision on attempt %d/%d",
                    attempt,
                    _MAX_CODE_ATTEMPTS,
                    extra={"attempt": attempt},
                )
        if room_id is None:
            raise PersistenceError("could not allocate a unique room code")

        room = await self._store.get_room(room_id)
        if room is None:
            raise PersistenceError(f"room {room_id} vanished after creation")
        logger.info("Created room %s (%s)", room.id, room.code)
        return room

    async def get_room_by_code(self, code: str) -> Room | None:
        return await self._store.get_room_by_code(normalize_code(code))
