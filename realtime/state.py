"""In-memory connection/session table for GuardChat Socket.IO handlers.

Owned by the SessionController. A connection is opened when it passes the
connect gate, bound to a room session on join, and closed on disconnect.
"""

import threading
from dataclasses import dataclass


@dataclass
class Session:
    sid: str
    room: str
    user_id: str
    name: str
    joined_at: int = 0


@dataclass
class _Connection:
    ip: str
    session: Session | None = None


class SessionTable:
    def __init__(self):
        self._conns: dict[str, _Connection] = {}
        self._lock = threading.Lock()

    def open(self, sid: str, ip: str) -> None:
        with self._lock:
            self._conns[sid] = _Connection(ip=ip)

    def is_open(self, sid: str) -> bool:
        with self._lock:
            return sid in self._conns

    def ip_of(self, sid: str) -> str | None:
        with self._lock:
            conn = self._conns.get(sid)
            return conn.ip if conn else None

    def bind(self, sid: str, room: str, user_id: str, name: str, joined_at: int) -> Session | None:
        """Attach a room session to an open connection. None if it already closed."""
        with self._lock:
            conn = self._conns.get(sid)
            if conn is None:
                return None
            conn.session = Session(sid=sid, room=room, user_id=user_id, name=name, joined_at=joined_at)
            return conn.session

    def unbind(self, sid: str) -> Session | None:
        with self._lock:
            conn = self._conns.get(sid)
            if conn is None:
                return None
            session, conn.session = conn.session, None
            return session

    def get(self, sid: str) -> Session | None:
        with self._lock:
            conn = self._conns.get(sid)
            return conn.session if conn else None

    def close(self, sid: str) -> Session | None:
        """Forget a connection; returns its room session, if it had joined one."""
        with self._lock:
            conn = self._conns.pop(sid, None)
        return conn.session if conn else None

    def members(self, room: str) -> list[Session]:
        with self._lock:
            return [c.session for c in self._conns.values() if c.session and c.session.room == room]

    def __len__(self) -> int:
        with self._lock:
            return len(self._conns)
