from __future__ import annotations

import pytest

from constants import DEFAULT_NAME, DEFAULT_ROOM, MAX_NAME_CHARS, MAX_ROOM_CHARS
from realtime.events import ChatEvent, InvalidEvent, JoinEvent, ReportEvent, TypingEvent


class TestJoinEvent:
    def test_full_payload(self) -> None:
        ev = JoinEvent.from_payload(
            {"userId": " u1 ", "name": " Ayşe ", "room": "vip", "inviteToken": " t0k ", "ageOk": True}
        )
        assert ev == JoinEvent(user_id="u1", name="Ayşe", room="vip", invite_token=" t0k ", age_ok=True)

    def test_defaults(self) -> None:
        ev = JoinEvent.from_payload({"userId": "u1"})
        assert ev.name == DEFAULT_NAME
        assert ev.room == DEFAULT_ROOM
        assert ev.invite_token == ""
        assert ev.age_ok is False

    def test_blank_name_and_room_fall_back_to_defaults(self) -> None:
        ev = JoinEvent.from_payload({"userId": "u1", "name": "   ", "room": ""})
        assert (ev.name, ev.room) == (DEFAULT_NAME, DEFAULT_ROOM)

    def test_fields_are_capped(self) -> None:
        ev = JoinEvent.from_payload({"userId": "u1", "name": "n" * 100, "room": "r" * 100})
        assert len(ev.name) == MAX_NAME_CHARS
        assert len(ev.room) == MAX_ROOM_CHARS

    @pytest.mark.parametrize("age_ok", ["true", 1, "yes", None])
    def test_only_literal_true_confirms_age(self, age_ok) -> None:
        assert JoinEvent.from_payload({"userId": "u1", "ageOk": age_ok}).age_ok is False

    @pytest.mark.parametrize("payload", [{}, {"userId": ""}, {"userId": "   "}, None])
    def test_user_id_is_required(self, payload) -> None:
        with pytest.raises(InvalidEvent):
            JoinEvent.from_payload(payload)

    @pytest.mark.parametrize("payload", ["join me", ["u1"], {"userId": {"id": 1}}, {"userId": "u1", "name": True}])
    def test_wrong_shapes_are_rejected(self, payload) -> None:
        with pytest.raises(InvalidEvent):
            JoinEvent.from_payload(payload)


class TestChatEvent:
    def test_text_is_kept_untrimmed(self) -> None:
        ev = ChatEvent.from_payload({"room": "lobby", "text": "  hi  "})
        assert ev.text == "  hi  "

    def test_missing_text_is_empty(self) -> None:
        assert ChatEvent.from_payload({}).text == ""

    def test_non_string_text_is_rejected(self) -> None:
        with pytest.raises(InvalidEvent):
            ChatEvent.from_payload({"text": {"html": "<b>x</b>"}})


class TestTypingEvent:
    def test_flag(self) -> None:
        assert TypingEvent.from_payload({"isTyping": True}).is_typing is True
        assert TypingEvent.from_payload({}).is_typing is False


class TestReportEvent:
    def test_target_is_required(self) -> None:
        with pytest.raises(InvalidEvent):
            ReportEvent.from_payload({"text": "spam"})

    def test_fields(self) -> None:
        ev = ReportEvent.from_payload({"targetUserId": "u2", "text": " spam "})
        assert ev.target_user_id == "u2"
        assert ev.text == "spam"
