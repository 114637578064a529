"""Abstract base class and types for row-level change feeds."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Collection, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from studyroom.models.enums import ChangeType, Table


@dataclass
class ChangeEvent:
    """A committed insert, update or delete of one row.

    ``new`` is the row after the change (absent for deletes) and ``old`` the
    row before it (absent for inserts). Rows are JSON-compatible dicts, the
    way a hosted database streams them.
    """

    table: Table
    type: ChangeType
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def record(self) -> dict[str, Any]:
        """The most recent known version of the row."""
        return self.new if self.new is not None else (self.old or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "table": self.table.value,
            "type": self.type.value,
            "new": self.new,
            "old": self.old,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeEvent:
        """Create a ChangeEvent from a dictionary."""
        return cls(
            id=data["id"],
            table=Table(data["table"]),
            type=ChangeType(data["type"]),
            new=data.get("new"),
            old=data.get("old"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True)
class ChangeFilter:
    """Equality filter on one column, e.g. ``room_id = X``."""

    column: str
    value: Any

    def matches(self, event: ChangeEvent) -> bool:
        for row in (event.new, event.old):
            if row is not None and row.get(self.column) == self.value:
                return True
        return False

    def __str__(self) -> str:
        return f"{self.column}=eq.{self.value}"


ChangeCallback = Callable[[ChangeEvent], Coroutine[Any, Any, None]]
GapCallback = Callable[[], Coroutine[Any, Any, None]]


class ChangeFeed(ABC):
    """Abstract base for row change feeds.

    Implement this to plug in any push backend (Postgres logical replication,
    a hosted realtime service, Redis pub/sub...). The library ships with
    ``InMemoryChangeFeed`` for single-process deployments and tests.
    """

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every matching subscription."""
        ...

    @abstractmethod
    async def subscribe(
        self,
        table: Table,
        callback: ChangeCallback,
        *,
        filter: ChangeFilter | None = None,
        events: Collection[ChangeType] | None = None,
        on_gap: GapCallback | None = None,
    ) -> str:
        """Subscribe to changes on *table*.

        Args:
            table: Table to watch.
            callback: Awaited once per delivered event.
            filter: Only deliver rows matching this filter.
            events: Only deliver these change types. ``None`` means all.
            on_gap: Awaited after events for this subscription were lost, so
                the subscriber can refetch the rows it caches.

        Returns:
            A subscription ID that can be used to unsubscribe.
        """
        ...

    @abstractmethod
    async def unsubscribe(self, subscription_id: str) -> bool:
        """Unsubscribe.

        Returns:
            True if the subscription existed and was removed.
        """
        ...

    async def subscribe_to_room(
        self,
        table: Table,
        room_id: str,
        callback: ChangeCallback,
        *,
        events: Collection[ChangeType] | None = None,
        on_gap: GapCallback | None = None,
    ) -> str:
        """Convenience method to watch the rows of *table* belonging to a room."""
        column = "id" if table == Table.ROOMS else "room_id"
        return await self.subscribe(
            table,
            callback,
            filter=ChangeFilter(column, room_id),
            events=events,
            on_gap=on_gap,
        )

    async def close(self) -> None:
        """Clean up resources.

        Override this method in subclasses that need cleanup.
        The default implementation does nothing.
        """
        return None
