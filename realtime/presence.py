"""Room presence snapshots.

Every join and disconnect republishes the whole roster of the room
(`presence_full`). Rows come from the presence table, online users first,
most recently seen next. Without a store the roster falls back to the live
session table.
"""

from __future__ import annotations

from constants import PRESENCE_PAGE_SIZE
from database import attempt, store_ready
from realtime.state import SessionTable


def _public_row(row: dict) -> dict:
    return {
        "userId": row.get("user_id"),
        "name": row.get("name"),
        "isOnline": bool(row.get("is_online")),
        "lastSeen": row.get("last_seen"),
    }


class PresenceRegistry:
    def __init__(self, store, sessions: SessionTable, transport, page_size: int = PRESENCE_PAGE_SIZE):
        self.store = store
        self.sessions = sessions
        self.transport = transport
        self.page_size = int(page_size)

    def snapshot(self, room: str) -> list[dict]:
        if store_ready(self.store):
            res = attempt("presence snapshot", self.store.list_presence, room, self.page_size)
            if res.ok:
                return [_public_row(r) for r in res.value]
        return self._live_snapshot(room)

    def _live_snapshot(self, room: str) -> list[dict]:
        seen: dict[str, dict] = {}
        for s in sorted(self.sessions.members(room), key=lambda s: s.joined_at, reverse=True):
            seen.setdefault(s.user_id, {
                "userId": s.user_id,
                "name": s.name,
                "isOnline": True,
                "lastSeen": s.joined_at,
            })
        return list(seen.values())[: self.page_size]

    def publish(self, room: str) -> list[dict]:
        members = self.snapshot(room)
        self.transport.broadcast(room, "presence_full", {"room": room, "members": members})
        return members
