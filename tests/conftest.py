"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Coroutine
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from studyroom.config import StudyRoomConfig
from studyroom.core.framework import StudyRoomClient
from studyroom.models.room import Room
from studyroom.realtime.memory import InMemoryChangeFeed
from studyroom.store.local import InMemoryDeviceStorage
from studyroom.store.memory import InMemoryStore

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock, callable like ``utcnow``."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def feed() -> AsyncIterator[InMemoryChangeFeed]:
    f = InMemoryChangeFeed()
    yield f
    await f.close()


@pytest.fixture
def store(feed: InMemoryChangeFeed) -> InMemoryStore:
    return InMemoryStore(feed)


@pytest.fixture
async def room(store: InMemoryStore) -> Room:
    room_id = await store.create_room_with_state("abcd1234", "Library")
    result = await store.get_room(room_id)
    assert result is not None
    return result


MakeClient = Callable[..., Awaitable[StudyRoomClient]]


@pytest.fixture
async def make_client(
    store: InMemoryStore, feed: InMemoryChangeFeed, clock: FakeClock
) -> AsyncIterator[MakeClient]:
    """Build started clients sharing one store, feed and clock.

    Each client gets its own device storage, so it behaves like a separate
    browser. Clients are closed at teardown.
    """
    clients: list[StudyRoomClient] = []

    async def _make(
        name: str | None = "Alice",
        config: StudyRoomConfig | None = None,
        storage: InMemoryDeviceStorage | None = None,
    ) -> StudyRoomClient:
        client = StudyRoomClient(
            store=store,
            feed=feed,
            storage=storage or InMemoryDeviceStorage(),
            config=config,
            clock=clock,
        )
        await client.start()
        if name is not None:
            client.identity.set_guest_name(name)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.leave_room()
        await client.timer.close()
