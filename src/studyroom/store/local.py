"""Device-local key/value storage for guest names and rejoin ids."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger("studyroom.store")

GUEST_NAME_KEY = "studyroom_guest_name"


def participant_key(room_id: str) -> str:
    """Storage key for the participant id this device uses in *room_id*."""
    return f"studyroom_participant_{room_id}"


class DeviceStorage(ABC):
    """Synchronous string key/value storage that survives restarts on one device."""

    @abstractmethod
    def get_item(self, key: str) -> str | None: ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None: ...

    @abstractmethod
    def remove_item(self, key: str) -> None: ...


class InMemoryDeviceStorage(DeviceStorage):
    """Process-lifetime storage for tests and throwaway sessions."""

    def __init__(self, items: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JSONFileDeviceStorage(DeviceStorage):
    """Storage kept in a single JSON file, rewritten on every change."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._items: dict[str, str] = {}
        if self._path.exists():
            try:
                loaded = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError):
                logger.warning("Ignoring unreadable device storage file %s", self._path)
            else:
                if isinstance(loaded, dict):
                    self._items = {str(k): str(v) for k, v in loaded.items()}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value
        self._flush()

    def remove_item(self, key: str) -> None:
        if self._items.pop(key, None) is not None:
            self._flush()

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._items, indent=2, sort_keys=True), encoding="utf-8")
