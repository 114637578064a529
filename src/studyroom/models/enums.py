"""All string enums for studyroom."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class Table(StrEnum):
    ROOMS = "rooms"
    ROOM_STATE = "room_state"
    PARTICIPANTS = "participants"
    TASKS = "tasks"
    MESSAGES = "messages"


@unique
class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@unique
class MessageType(StrEnum):
    USER = "user"
    SYSTEM = "system"


@unique
class TimerPhase(StrEnum):
    FOCUS = "focus"
    BREAK = "break"


@unique
class TimerCompletion(StrEnum):
    """What the countdown does when it reaches zero."""

    STOP = "stop"
    SWITCH_PHASE = "switch_phase"


@unique
class AuthEvent(StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
