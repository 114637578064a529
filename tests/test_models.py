"""Tests for row models, appearance helpers and configuration."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from studyroom.config import StudyRoomConfig
from studyroom.models.appearance import (
    AVATAR_COLORS,
    BACKGROUNDS,
    DEFAULT_BACKGROUND,
    avatar_color,
    get_background,
    is_known_background,
)
from studyroom.models.enums import MessageType, TimerCompletion, TimerPhase
from studyroom.models.identity import User
from studyroom.models.message import Message
from studyroom.models.participant import Participant
from studyroom.models.room import Room, RoomState
from studyroom.models.task import Task


class TestRoomState:
    def test_defaults(self) -> None:
        state = RoomState(room_id="r1")
        assert state.running is False
        assert state.started_at is None
        assert state.phase == TimerPhase.FOCUS
        assert state.focus_seconds == 1500
        assert state.break_seconds == 300
        assert state.background_id is None

    def test_running_requires_started_at(self) -> None:
        with pytest.raises(ValidationError):
            RoomState(room_id="r1", running=True)

    def test_started_at_requires_running(self) -> None:
        with pytest.raises(ValidationError):
            RoomState(room_id="r1", started_at=datetime.now(UTC))

    def test_running_with_started_at(self) -> None:
        now = datetime.now(UTC)
        state = RoomState(room_id="r1", running=True, started_at=now)
        assert state.started_at == now

    def test_duration_follows_phase(self) -> None:
        state = RoomState(room_id="r1", focus_seconds=1200, break_seconds=240)
        assert state.duration_seconds == 1200
        assert state.model_copy(update={"phase": TimerPhase.BREAK}).duration_seconds == 240

    def test_duration_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            RoomState(room_id="r1", focus_seconds=0)


class TestRows:
    def test_room_ids_are_unique(self) -> None:
        assert Room(code="aaaa1111").id != Room(code="aaaa1111").id

    def test_participant_defaults(self) -> None:
        p = Participant(room_id="r1", name="Alice")
        assert p.is_active is True
        assert p.do_not_disturb is False
        assert p.user_id is None
        assert p.on_break is False
        assert p.current_task_id is None

    def test_task_defaults(self) -> None:
        t = Task(room_id="r1", participant_id="p1", content="Read chapter 3")
        assert t.done is False
        assert t.sort_order == 0

    def test_message_type_from_row(self) -> None:
        m = Message.model_validate(
            {
                "room_id": "r1",
                "participant_id": "p1",
                "content": "hi",
                "message_type": "system",
                "created_at": "2026-01-05T09:00:00+00:00",
            }
        )
        assert m.message_type == MessageType.SYSTEM

    def test_user_derived_name(self) -> None:
        assert User(email="maria.lopez@example.com").derived_name == "maria.lopez"


class TestAppearance:
    def test_catalog(self) -> None:
        assert [b.id for b in BACKGROUNDS] == [f"video-{n}" for n in range(1, 6)]
        assert DEFAULT_BACKGROUND.id == "video-1"

    def test_unknown_background_falls_back(self) -> None:
        assert get_background("nope") == DEFAULT_BACKGROUND
        assert get_background(None) == DEFAULT_BACKGROUND
        assert get_background("video-3").id == "video-3"

    def test_is_known_background(self) -> None:
        assert is_known_background("video-5")
        assert not is_known_background("video-6")

    def test_avatar_color_is_stable(self) -> None:
        assert avatar_color("a") == AVATAR_COLORS[7]
        assert avatar_color("participant-42") == avatar_color("participant-42")

    def test_avatar_color_in_palette(self) -> None:
        for pid in ("", "x", "3f2c9a4e", "a-very-long-participant-identifier-" * 5):
            assert avatar_color(pid) in AVATAR_COLORS


class TestConfig:
    def test_defaults(self) -> None:
        config = StudyRoomConfig()
        assert config.heartbeat_interval == 30.0
        assert config.presence_threshold == 120.0
        assert config.page_size == 100
        assert config.duration_debounce == 0.3
        assert config.timer_completion == TimerCompletion.SWITCH_PHASE
        assert config.room_code_length == 8

    def test_rejects_inverted_bounds(self) -> None:
        with pytest.raises(ValidationError):
            StudyRoomConfig(min_duration_seconds=100, max_duration_seconds=10)

    def test_rejects_non_positive_interval(self) -> None:
        with pytest.raises(ValidationError):
            StudyRoomConfig(heartbeat_interval=0)

    def test_clamp_duration(self) -> None:
        config = StudyRoomConfig(min_duration_seconds=60, max_duration_seconds=3600)
        assert config.clamp_duration(5) == 60
        assert config.clamp_duration(600) == 600
        assert config.clamp_duration(99999) == 3600
