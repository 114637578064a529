"""Shared helpers for the room managers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

logger = logging.getLogger("studyroom")

Clock = Callable[[], datetime]
Listener = Callable[[], None]


def utcnow() -> datetime:
    return datetime.now(UTC)


class Observable:
    """Holds local state and tells registered listeners whenever it changes."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* after every local state change. Returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("State listener %r failed", listener)
