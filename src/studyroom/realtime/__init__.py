"""Change feed for row-level inserts, updates and deletes."""

from studyroom.realtime.base import (
    ChangeCallback,
    ChangeEvent,
    ChangeFeed,
    ChangeFilter,
    GapCallback,
)
from studyroom.realtime.memory import InMemoryChangeFeed

__all__ = [
    "ChangeCallback",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeFilter",
    "GapCallback",
    "InMemoryChangeFeed",
]
