"""In-memory change feed using asyncio tasks."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import OrderedDict
from collections.abc import Collection
from uuid import uuid4

from studyroom.models.enums import ChangeType, Table
from studyroom.realtime.base import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangeFilter,
    GapCallback,
)

logger = logging.getLogger("studyroom.realtime")


class InMemoryChangeFeed(ChangeFeed):
    """In-process change feed.

    Each subscription drains its own queue in a background task, so events
    reach one subscriber in publish order while separate subscribers run
    independently of each other.

    A full queue drops its oldest event. The subscription then awaits its
    ``on_gap`` callback once the queue drains so the subscriber can refetch.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        """Initialize the in-memory change feed.

        Args:
            max_queue_size: Maximum number of events to queue per subscription.
                The oldest event is dropped when the queue is full.
        """
        self._max_queue_size = max_queue_size
        self._subscriptions: dict[str, _Subscription] = {}
        self._tables: dict[Table, set[str]] = {}  # table -> subscription_ids
        self._closed = False

    async def publish(self, event: ChangeEvent) -> None:
        if self._closed:
            return

        for sub_id in list(self._tables.get(event.table, ())):
            sub = self._subscriptions.get(sub_id)
            if sub is not None and sub.accepts(event):
                sub.enqueue(event)

    async def subscribe(
        self,
        table: Table,
        callback: ChangeCallback,
        *,
        filter: ChangeFilter | None = None,
        events: Collection[ChangeType] | None = None,
        on_gap: GapCallback | None = None,
    ) -> str:
        sub_id = uuid4().hex
        sub = _Subscription(
            sub_id=sub_id,
            table=table,
            callback=callback,
            filter=filter,
            events=frozenset(events) if events is not None else None,
            max_queue_size=self._max_queue_size,
            on_gap=on_gap,
        )
        self._subscriptions[sub_id] = sub
        self._tables.setdefault(table, set()).add(sub_id)
        sub.start()
        logger.debug("Subscribed %s to %s (%s)", sub_id, table, filter or "all rows")
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> bool:
        sub = self._subscriptions.pop(subscription_id, None)
        if sub is None:
            return False

        table_subs = self._tables.get(sub.table)
        if table_subs:
            table_subs.discard(subscription_id)
            if not table_subs:
                del self._tables[sub.table]

        await sub.stop()
        return True

    async def close(self) -> None:
        """Stop all subscriptions and clean up."""
        self._closed = True
        for sub in list(self._subscriptions.values()):
            await sub.stop()
        self._subscriptions.clear()
        self._tables.clear()

    @property
    def subscription_count(self) -> int:
        """Return the number of active subscriptions."""
        return len(self._subscriptions)


class _Subscription:
    """Internal subscription handler with queue and background task."""

    def __init__(
        self,
        sub_id: str,
        table: Table,
        callback: ChangeCallback,
        filter: ChangeFilter | None,
        events: frozenset[ChangeType] | None,
        max_queue_size: int,
        on_gap: GapCallback | None = None,
    ) -> None:
        self.sub_id = sub_id
        self.table = table
        self.callback = callback
        self.filter = filter
        self.events = events
        self.on_gap = on_gap
        self.gap = False
        self._queue: OrderedDict[str, ChangeEvent] = OrderedDict()
        self._max_queue_size = max_queue_size
        self._event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    def accepts(self, event: ChangeEvent) -> bool:
        if self.events is not None and event.type not in self.events:
            return False
        return self.filter is None or self.filter.matches(event)

    def enqueue(self, event: ChangeEvent) -> None:
        """Add an event to the queue, dropping oldest if full."""
        if self._stopped:
            return

        while len(self._queue) >= self._max_queue_size:
            dropped_id, _ = self._queue.popitem(last=False)
            self.gap = True
            logger.warning(
                "Change feed queue full for subscription %s, dropped event %s",
                self.sub_id,
                dropped_id,
                extra={"subscription_id": self.sub_id, "table": self.table.value},
            )

        self._queue[event.id] = event
        self._event.set()

    def start(self) -> None:
        """Start the background task that drains the queue."""
        self._task = asyncio.create_task(self._run(), name=f"change-feed:{self.sub_id}")

    async def stop(self) -> None:
        """Stop the background task."""
        self._stopped = True
        self._event.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        """Background task that drains the queue and invokes callbacks."""
        while not self._stopped:
            await self._event.wait()
            self._event.clear()

            while self._queue and not self._stopped:
                _, event = self._queue.popitem(last=False)
                try:
                    await self.callback(event)
                except Exception:
                    logger.exception("Error in change feed callback for subscription %s", self.sub_id)

            if self.gap and not self._stopped:
                self.gap = False
                await self._resync()

    async def _resync(self) -> None:
        if self.on_gap is None:
            return
        logger.info("Resyncing subscription %s after dropped events", self.sub_id)
        try:
            await self.on_gap()
        except Exception:
            logger.exception("Error in change feed resync for subscription %s", self.sub_id)
