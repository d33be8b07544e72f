"""Inbound Socket.IO payloads, parsed and clamped at the boundary.

Handlers never see raw dicts: each event is turned into one of the
dataclasses below, or rejected with InvalidEvent.
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import (
    DEFAULT_NAME,
    DEFAULT_ROOM,
    MAX_NAME_CHARS,
    MAX_REPORT_CHARS,
    MAX_ROOM_CHARS,
    MAX_TOKEN_CHARS,
    MAX_USER_ID_CHARS,
)


class InvalidEvent(ValueError):
    """Payload has the wrong shape for its event."""


def _payload(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidEvent("payload must be an object")
    return data


def _text(data: dict, key: str, default: str = "", limit: int | None = None, strip: bool = True) -> str:
    val = data.get(key)
    if val is None:
        return default
    if isinstance(val, bool) or not isinstance(val, (str, int, float)):
        raise InvalidEvent(f"{key} must be a string")
    s = str(val)
    if strip:
        s = s.strip()
    if limit is not None:
        s = s[:limit]
    return s or default


def _required(data: dict, key: str, limit: int) -> str:
    s = _text(data, key, limit=limit)
    if not s:
        raise InvalidEvent(f"{key} is required")
    return s


@dataclass(frozen=True)
class JoinEvent:
    user_id: str
    name: str
    room: str
    invite_token: str
    age_ok: bool

    @classmethod
    def from_payload(cls, data) -> "JoinEvent":
        data = _payload(data)
        return cls(
            user_id=_required(data, "userId", MAX_USER_ID_CHARS),
            name=_text(data, "name", DEFAULT_NAME, MAX_NAME_CHARS),
            room=_text(data, "room", DEFAULT_ROOM, MAX_ROOM_CHARS),
            invite_token=_text(data, "inviteToken", "", MAX_TOKEN_CHARS, strip=False),
            # Only an explicit true confirms age.
            age_ok=data.get("ageOk") is True,
        )


@dataclass(frozen=True)
class ChatEvent:
    room: str
    user_id: str
    name: str
    text: str

    @classmethod
    def from_payload(cls, data) -> "ChatEvent":
        data = _payload(data)
        # Trimming and the length cap belong to the message flow.
        return cls(
            room=_text(data, "room", DEFAULT_ROOM, MAX_ROOM_CHARS),
            user_id=_text(data, "userId", "", MAX_USER_ID_CHARS),
            name=_text(data, "name", DEFAULT_NAME, MAX_NAME_CHARS),
            text=_text(data, "text", "", strip=False),
        )


@dataclass(frozen=True)
class TypingEvent:
    room: str
    name: str
    is_typing: bool

    @classmethod
    def from_payload(cls, data) -> "TypingEvent":
        data = _payload(data)
        return cls(
            room=_text(data, "room", DEFAULT_ROOM, MAX_ROOM_CHARS),
            name=_text(data, "name", DEFAULT_NAME, MAX_NAME_CHARS),
            is_typing=bool(data.get("isTyping")),
        )


@dataclass(frozen=True)
class ReportEvent:
    room: str
    reporter_user_id: str
    target_user_id: str
    text: str

    @classmethod
    def from_payload(cls, data) -> "ReportEvent":
        data = _payload(data)
        return cls(
            room=_text(data, "room", DEFAULT_ROOM, MAX_ROOM_CHARS),
            reporter_user_id=_text(data, "reporterUserId", "", MAX_USER_ID_CHARS),
            target_user_id=_required(data, "targetUserId", MAX_USER_ID_CHARS),
            text=_text(data, "text", "", MAX_REPORT_CHARS),
        )
