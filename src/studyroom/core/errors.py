"""Exception hierarchy for studyroom."""

from __future__ import annotations

__all__ = [
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
]


class StudyRoomError(Exception):
    """Base exception for all studyroom errors."""


class RoomNotFoundError(StudyRoomError):
    """No room matches the given code or id."""


class ValidationFailedError(StudyRoomError):
    """Input was rejected before reaching the store (empty name, blank content...)."""


class IdentityRequiredError(StudyRoomError):
    """The action needs a display name and none is set."""


class PersistenceError(StudyRoomError):
    """The store rejected a read or write."""


class JoinFailedError(PersistenceError):
    """Joining a room failed while talking to the store."""


class AlreadyInProgressError(StudyRoomError):
    """A duplicate submission was suppressed while the first is in flight."""


class NotJoinedError(StudyRoomError):
    """The operation needs a joined room."""


class AuthenticationError(StudyRoomError):
    """Sign-in or sign-up was rejected."""


class RoomCodeTakenError(PersistenceError):
    """A generated room code collided with an existing room."""
