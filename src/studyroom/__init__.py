"""studyroom - Async client core for collaborative study rooms."""

from studyroom._version import __version__
from studyroom.config import StudyRoomConfig
from studyroom.core.chat import ChatStream, filter_visible
from studyroom.core.debounce import Debouncer
from studyroom.core.directory import (
    LANDING_PATH,
    RoomDirectory,
    generate_room_code,
    normalize_code,
    room_path,
)
from studyroom.core.framework import (
    AlreadyInProgressError,
    AuthenticationError,
    IdentityRequiredError,
    JoinFailedError,
    NotJoinedError,
    PersistenceError,
    RoomCodeTakenError,
    RoomNotFoundError,
    StudyRoomClient,
    StudyRoomError,
    ValidationFailedError,
)
from studyroom.core.membership import JoinResult, RoomMembership
from studyroom.core.room_state import RoomStateSync
from studyroom.core.tasks import TaskBoard
from studyroom.core.timer import (
    CountdownTimer,
    compute_remaining,
    describe_duration,
    format_time,
    parse_duration,
)
from studyroom.identity.base import AuthProvider
from studyroom.identity.mock import InMemoryAuthProvider
from studyroom.identity.resolver import IdentityResolver
from studyroom.models.appearance import (
    BACKGROUNDS,
    DEFAULT_BACKGROUND,
    Background,
    avatar_color,
    get_background,
)
from studyroom.models.enums import (
    AuthEvent,
    ChangeType,
    MessageType,
    Table,
    TimerCompletion,
    TimerPhase,
)
from studyroom.models.identity import Session, User
from studyroom.models.message import Message
from studyroom.models.participant import Participant
from studyroom.models.room import Room, RoomState
from studyroom.models.task import Task
from studyroom.realtime import ChangeEvent, ChangeFeed, ChangeFilter, InMemoryChangeFeed
from studyroom.store.base import RoomStore
from studyroom.store.local import DeviceStorage, InMemoryDeviceStorage, JSONFileDeviceStorage
from studyroom.store.memory import InMemoryStore

__all__ = [
    # Client
    "StudyRoomClient",
    "StudyRoomConfig",
    # Errors
    "AlreadyInProgressError",
    "AuthenticationError",
    "IdentityRequiredError",
    "JoinFailedError",
    "NotJoinedError",
    "PersistenceError",
    "RoomCodeTakenError",
    "RoomNotFoundError",
    "StudyRoomError",
    "ValidationFailedError",
    # Managers
    "ChatStream",
    "CountdownTimer",
    "Debouncer",
    "IdentityResolver",
    "JoinResult",
    "RoomDirectory",
    "RoomMembership",
    "RoomStateSync",
    "TaskBoard",
    # Helpers
    "LANDING_PATH",
    "compute_remaining",
    "describe_duration",
    "filter_visible",
    "format_time",
    "generate_room_code",
    "normalize_code",
    "parse_duration",
    "room_path",
    # Models
    "AuthEvent",
    "BACKGROUNDS",
    "Background",
    "ChangeType",
    "DEFAULT_BACKGROUND",
    "Message",
    "MessageType",
    "Participant",
    "Room",
    "RoomState",
    "Session",
    "Table",
    "Task",
    "TimerCompletion",
    "TimerPhase",
    "User",
    "avatar_color",
    "get_background",
    # Collaborators
    "AuthProvider",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeFilter",
    "DeviceStorage",
    "InMemoryAuthProvider",
    "InMemoryChangeFeed",
    "InMemoryDeviceStorage",
    "InMemoryStore",
    "JSONFileDeviceStorage",
    "PostgresStore",
    "RoomStore",
    "__version__",
]


def __getattr__(name: str) -> object:
    if name == "PostgresStore":
        from studyroom.store.postgres import PostgresStore

        return PostgresStore
    raise AttributeError(f"module 'studyroom' has no attribute {name}")
