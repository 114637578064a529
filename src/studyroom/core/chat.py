"""Room chat: paged history, live appends and the do-not-disturb view."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterable
from datetime import datetime

from pydantic import ValidationError

from studyroom.config import StudyRoomConfig
from studyroom.core._helpers import Clock, Observable, utcnow
from studyroom.core.errors import NotJoinedError, PersistenceError
from studyroom.core.membership import RoomMembership
from studyroom.models.enums import ChangeType, MessageType, Table
from studyroom.models.message import Message
from studyroom.realtime.base import ChangeEvent, ChangeFeed
from studyroom.store.base import RoomStore

logger = logging.getLogger("studyroom.chat")


def filter_visible(messages: Iterable[Message], dnd_enabled_at: datetime | None) -> list[Message]:
    """Hide user messages created at or after DND was switched on.

    Nothing is deleted: turning DND off shows the hidden messages again.
    System messages always stay visible.
    """
    if dnd_enabled_at is None:
        return list(messages)
    return [
        m
        for m in messages
        if m.message_type == MessageType.SYSTEM or m.created_at < dnd_enabled_at
    ]


class ChatStream(Observable):
    """Chronological message list for the joined room."""

    def __init__(
        self,
        store: RoomStore,
        feed: ChangeFeed,
        membership: RoomMembership,
        config: StudyRoomConfig | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__()
        self._store = store
        self._feed = feed
        self._membership = membership
        self._config = config or StudyRoomConfig()
        self._clock = clock
        self._messages: list[Message] = []
        self._ids: set[str] = set()
        self._subscription: str | None = None
        self.has_more = True
        self.is_loading = False
        self.is_loading_more = False

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def visible_messages(self) -> list[Message]:
        return filter_visible(self._messages, self._membership.dnd_enabled_at)

    async def attach(self) -> None:
        """Subscribe to new messages in the joined room and load the latest page."""
        room = self._membership.room
        if room is None:
            raise NotJoinedError("Not in a room")
        await self.detach()
        self._subscription = await self._feed.subscribe_to_room(
            Table.MESSAGES,
            room.id,
            self._on_insert,
            events={ChangeType.INSERT},
            on_gap=self.load,
        )
        await self.load()

    async def detach(self) -> None:
        if self._subscription is not None:
            await self._feed.unsubscribe(self._subscription)
            self._subscription = None
        self._messages = []
        self._ids = set()
        self.has_more = True

    async def load(self) -> None:
        """Replace the list with the most recent page, oldest first."""
        room = self._membership.room
        if room is None:
            return
        self.is_loading = True
        self.has_more = True
        try:
            page = await self._store.list_messages(room.id, limit=self._config.page_size)
        except PersistenceError:
            logger.exception("Failed to load messages for room %s", room.id)
            return
        finally:
            self.is_loading = False
        page.reverse()
        # Pushes that landed while the page was in flight are kept.
        page_ids = {m.id for m in page}
        arrived = [m for m in self._messages if m.id not in page_ids]
        self._messages = page
        self._ids = page_ids
        for message in arrived:
            self._add(message)
        self.has_more = len(page) == self._config.page_size
        self._notify()

    async def load_older_messages(self) -> int:
        """Prepend the page before the oldest loaded message. Returns rows added."""
        room = self._membership.room
        if room is None or self.is_loading_more or not self.has_more or not self._messages:
            return 0
        oldest = self._messages[0]
        self.is_loading_more = True
        try:
            page = await self._store.list_messages(
                room.id, before=oldest.created_at, limit=self._config.page_size
            )
        except PersistenceError:
            logger.exception("Failed to load older messages for room %s", room.id)
            return 0
        finally:
            self.is_loading_more = False

        fresh = [m for m in reversed(page) if m.id not in self._ids]
        self._messages = fresh + self._messages
        self._ids.update(m.id for m in fresh)
        self.has_more = len(page) == self._config.page_size
        self._notify()
        return len(fresh)

    def _add(self, message: Message) -> bool:
        if message.id in self._ids:
            return False
        self._ids.add(message.id)
        bisect.insort_right(self._messages, message, key=lambda m: m.created_at)
        return True

    async def _on_insert(self, event: ChangeEvent) -> None:
        room = self._membership.room
        if room is None or event.new is None or event.new.get("room_id") != room.id:
            return
        try:
            message = Message.model_validate(event.new)
        except ValidationError:
            logger.warning("Ignoring malformed message push in room %s", room.id)
            return
        if self._add(message):
            self._notify()

    async def send_message(self, content: str) -> bool:
        return await self._send(content, MessageType.USER)

    async def send_system_message(self, content: str) -> bool:
        return await self._send(content, MessageType.SYSTEM)

    async def _send(self, content: str, message_type: MessageType) -> bool:
        room = self._membership.room
        participant = self._membership.current_participant
        content = content.strip()
        if room is None or participant is None or not content:
            return False
        try:
            message = await self._store.add_message(
                Message(
                    room_id=room.id,
                    participant_id=participant.id,
                    content=content,
                    message_type=message_type,
                    created_at=self._clock(),
                )
            )
        except PersistenceError:
            logger.exception("Failed to send %s message", message_type)
            return False
        if self._add(message):
            self._notify()
        return True
