"""StudyRoomClient: one object wiring every room manager together."""

from __future__ import annotations

import logging
from types import TracebackType

from studyroom.config import StudyRoomConfig
from studyroom.core._helpers import Clock, utcnow
from studyroom.core.chat import ChatStream
from studyroom.core.directory import RoomDirectory
from studyroom.core.errors import (
    AlreadyInProgressError,
    AuthenticationError,
    IdentityRequiredError,
    JoinFailedError,
    NotJoinedError,
    PersistenceError,
    RoomCodeTakenError,
    RoomNotFoundError,
    StudyRoomError,
    ValidationFailedError,
)
from studyroom.core.membership import JoinResult, RoomMembership
from studyroom.core.room_state import RoomStateSync
from studyroom.core.tasks import TaskBoard
from studyroom.core.timer import CountdownTimer, describe_duration
from studyroom.identity.base import AuthProvider
from studyroom.identity.mock import InMemoryAuthProvider
from studyroom.identity.resolver import IdentityResolver
from studyroom.models.room import Room, RoomState
from studyroom.realtime.base import ChangeFeed
from studyroom.realtime.memory import InMemoryChangeFeed
from studyroom.store.base import RoomStore
from studyroom.store.local import DeviceStorage, InMemoryDeviceStorage
from studyroom.store.memory import InMemoryStore

__all__ = [
    "AlreadyInProgressError",
    "AuthenticationError",
    "IdentityRequiredError",
    "JoinFailedError",
    "NotJoinedError",
    "PersistenceError",
    "RoomCodeTakenError",
    "RoomNotFoundError",
    "StudyRoomClient",
    "StudyRoomError",
    "ValidationFailedError",
]

logger = logging.getLogger("studyroom.client")


class StudyRoomClient:
    """Client-side core of a collaborative study room."""

    def __init__(
        self,
        store: RoomStore | None = None,
        feed: ChangeFeed | None = None,
        auth: AuthProvider | None = None,
        storage: DeviceStorage | None = None,
        config: StudyRoomConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        """Initialise the client.

        Args:
            store: Row store. Defaults to ``InMemoryStore`` publishing to *feed*.
            feed: Change feed the managers subscribe to. Defaults to the
                store's own feed, or a new ``InMemoryChangeFeed``.
            auth: Account provider. Defaults to ``InMemoryAuthProvider``.
            storage: Per-device key/value storage for the guest name and
                remembered participant ids. Defaults to
                ``InMemoryDeviceStorage``.
            config: Tunables shared by every manager.
            clock: Source of "now"; override in tests.
        """
        self.config = config or StudyRoomConfig()
        if feed is None:
            feed = store.feed if store is not None and store.feed is not None else None
        self.feed = feed or InMemoryChangeFeed(max_queue_size=self.config.feed_queue_size)
        self.store = store or InMemoryStore(self.feed)
        if self.store.feed is None:
            self.store.feed = self.feed
        self.auth = auth or InMemoryAuthProvider()
        self.storage = storage or InMemoryDeviceStorage()
        self._clock = clock

        self.identity = IdentityResolver(self.auth, self.storage)
        self.directory = RoomDirectory(self.store, self.config)
        self.room_state = RoomStateSync(self.store, self.feed, self.config, clock)
        self.membership = RoomMembership(
            self.store,
            self.feed,
            self.identity,
            self.storage,
            self.room_state,
            self.config,
            clock,
        )
        self.timer = CountdownTimer(self.room_state, self.config, clock)
        self.chat = ChatStream(self.store, self.feed, self.membership, self.config, clock)
        self.tasks = TaskBoard(self.store, self.feed, self.membership, clock)

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Load the current auth session and follow auth changes."""
        await self.identity.start()

    async def close(self) -> None:
        await self.leave_room()
        await self.timer.close()
        self.identity.stop()
        await self.feed.close()
        await self.store.close()

    async def __aenter__(self) -> StudyRoomClient:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # -- rooms ----------------------------------------------------------------

    async def create_room(self, name: str | None = None) -> Room:
        return await self.directory.create_room(name)

    async def join_room(self, code: str) -> JoinResult:
        """Join a room by code, then load chat and tasks and start the timer tick.

        A room that is already joined is left first, even if the new code
        turns out to be unknown.
        """
        if self.membership.room is not None:
            await self.leave_room()
        result = await self.membership.join_room(code)
        await self.chat.attach()
        await self.tasks.attach()
        await self.timer.tick()
        self.timer.start_ticking()
        return result

    async def leave_room(self) -> None:
        await self.timer.stop_ticking()
        await self.timer.flush_duration()
        await self.chat.detach()
        await self.tasks.detach()
        await self.membership.leave_room()

    @property
    def room(self) -> Room | None:
        return self.membership.room

    @property
    def state(self) -> RoomState | None:
        return self.room_state.state

    def _actor_name(self) -> str:
        participant = self.membership.current_participant
        return participant.name if participant is not None else "Someone"

    # -- announced actions ----------------------------------------------------

    async def toggle_timer(self) -> RoomState:
        """Start or pause the shared timer and announce it in chat."""
        state = self.room_state.state
        if state is None:
            raise NotJoinedError("Not in a room")
        name = self._actor_name()
        if state.running:
            new_state = await self.room_state.pause()
            await self.chat.send_system_message(f"Timer stopped by {name}.")
        else:
            new_state = await self.room_state.start()
            duration = describe_duration(new_state.duration_seconds)
            await self.chat.send_system_message(f"Timer started for {duration} by {name}.")
        await self.timer.tick()
        return new_state

    async def toggle_do_not_disturb(self) -> bool:
        """Flip DND and announce it. Returns the new setting."""
        enabled = await self.membership.toggle_do_not_disturb()
        verb = "enabled" if enabled else "disabled"
        await self.chat.send_system_message(f"{self._actor_name()} {verb} Do Not Disturb")
        return enabled
