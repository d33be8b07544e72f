#!/usr/bin/env python3
"""
GuardChat – chat store (PostgreSQL version)

• psycopg2 ThreadedConnectionPool, created lazily and re-created after outages
• Idempotent schema bootstrap (CREATE TABLE IF NOT EXISTS)
• Tables: rooms, messages, presence, user_bans, ip_bans, strikes,
  reports, audit_log
• All timestamps are epoch milliseconds (BIGINT)

Every public ChatStore method raises StoreError on failure. Callers that must
keep working through an outage wrap calls in attempt(), which logs the failure
and hands back an Attempt instead of raising.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, NamedTuple

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from constants import PERMANENT, get_db_connection_string, redact_postgres_dsn


class StoreError(Exception):
    """Raised when the chat store cannot complete an operation."""


class Attempt(NamedTuple):
    ok: bool
    value: Any = None


def attempt(label: str, fn: Callable, *args, default: Any = None, **kwargs) -> Attempt:
    """Run a store call; failures are logged and returned, never raised."""
    try:
        return Attempt(True, fn(*args, **kwargs))
    except StoreError as exc:
        logging.warning("[store] %s failed: %s", label, exc)
        return Attempt(False, default)


def store_ready(store) -> bool:
    return store is not None and store.available()


# ----------------------------------------------------------------------
# Schema
# ----------------------------------------------------------------------
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS rooms (
        name           TEXT PRIMARY KEY,
        invite_token   TEXT NOT NULL DEFAULT '',
        owner_user_id  TEXT NOT NULL DEFAULT '',
        created_at     BIGINT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id       BIGSERIAL PRIMARY KEY,
        room     TEXT NOT NULL,
        user_id  TEXT NOT NULL,
        name     TEXT NOT NULL,
        text     TEXT NOT NULL,
        ts       BIGINT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS messages_room_ts_idx ON messages (room, ts DESC);",
    """
    CREATE TABLE IF NOT EXISTS presence (
        room       TEXT NOT NULL,
        user_id    TEXT NOT NULL,
        name       TEXT NOT NULL,
        is_online  BOOLEAN NOT NULL DEFAULT FALSE,
        last_seen  BIGINT NOT NULL,
        PRIMARY KEY (room, user_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_bans (
        room        TEXT NOT NULL,
        user_id     TEXT NOT NULL,
        reason      TEXT NOT NULL DEFAULT '',
        until       BIGINT NOT NULL DEFAULT 0,
        created_at  BIGINT NOT NULL,
        PRIMARY KEY (room, user_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS ip_bans (
        ip          TEXT PRIMARY KEY,
        reason      TEXT NOT NULL DEFAULT '',
        until       BIGINT NOT NULL DEFAULT 0,
        created_at  BIGINT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS strikes (
        room        TEXT NOT NULL,
        user_id     TEXT NOT NULL,
        strikes     INTEGER NOT NULL DEFAULT 0,
        updated_at  BIGINT NOT NULL,
        PRIMARY KEY (room, user_id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS reports (
        id                BIGSERIAL PRIMARY KEY,
        room              TEXT NOT NULL,
        reporter_user_id  TEXT NOT NULL,
        target_user_id    TEXT NOT NULL,
        text              TEXT NOT NULL DEFAULT '',
        created_at        BIGINT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id          BIGSERIAL PRIMARY KEY,
        actor       TEXT NOT NULL,
        action      TEXT NOT NULL,
        target      TEXT,
        details     TEXT,
        created_at  BIGINT NOT NULL
    );
    """,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatStore:
    """PostgreSQL-backed store for rooms, messages, presence, bans and strikes."""

    def __init__(
        self,
        dsn: str,
        *,
        minconn: int = 1,
        maxconn: int = 10,
        connect_timeout: int = 3,
        statement_timeout_ms: int = 5000,
        retry_seconds: float = 30.0,
    ) -> None:
        self.dsn = dsn
        self.minconn = int(minconn)
        self.maxconn = int(maxconn)
        self.connect_timeout = int(connect_timeout)
        self.statement_timeout_ms = int(statement_timeout_ms)
        self.retry_seconds = float(retry_seconds)

        self._pool: ThreadedConnectionPool | None = None
        self._last_attempt: float | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: dict) -> "ChatStore":
        return cls(
            get_db_connection_string(settings),
            minconn=settings.get("db_pool_min", 1),
            maxconn=settings.get("db_pool_max", 10),
            connect_timeout=settings.get("db_connect_timeout", 3),
            statement_timeout_ms=settings.get("db_statement_timeout_ms", 5000),
            retry_seconds=settings.get("db_retry_seconds", 30),
        )

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------
    def available(self) -> bool:
        """True when a pool is open; otherwise retry opening one (rate limited)."""
        if self._pool is not None:
            return True
        if self._last_attempt is not None and time.monotonic() - self._last_attempt < self.retry_seconds:
            return False
        return self._open_pool()

    def _open_pool(self) -> bool:
        with self._lock:
            if self._pool is not None:
                return True
            self._last_attempt = time.monotonic()
            try:
                pool = ThreadedConnectionPool(
                    minconn=self.minconn,
                    maxconn=self.maxconn,
                    dsn=self.dsn,
                    connect_timeout=self.connect_timeout,
                    options=f"-c statement_timeout={self.statement_timeout_ms}",
                )
            except psycopg2.Error as e:
                logging.warning("⚠️  Postgres unavailable (%s): %s", redact_postgres_dsn(self.dsn), e)
                return False
            self._pool = pool
            logging.info("✅  Postgres connection pool ready (min=%s max=%s)", self.minconn, self.maxconn)

        try:
            self.init_schema()
        except StoreError as e:
            logging.error("Schema bootstrap failed: %s", e)
        return self._pool is not None

    def _mark_down(self, pool: ThreadedConnectionPool, exc: Exception) -> None:
        with self._lock:
            if self._pool is pool:
                self._pool = None
                self._last_attempt = time.monotonic()
                logging.error("Postgres connection lost, entering degraded mode: %s", exc)
            if not pool.closed:
                pool.closeall()

    @contextmanager
    def _cursor(self, dict_rows: bool = False):
        if not self.available():
            raise StoreError("store unavailable")
        pool = self._pool
        if pool is None:
            raise StoreError("store unavailable")
        try:
            conn = pool.getconn()
        except psycopg2.Error as e:
            raise StoreError(str(e)) from e

        broken = False
        try:
            with conn.cursor(cursor_factory=RealDictCursor if dict_rows else None) as cur:
                yield cur
            conn.commit()
        except psycopg2.OperationalError as e:
            broken = True
            self._mark_down(pool, e)
            raise StoreError(str(e)) from e
        except psycopg2.Error as e:
            try:
                conn.rollback()
            except psycopg2.Error:
                broken = True
            raise StoreError(str(e)) from e
        finally:
            if not pool.closed:
                pool.putconn(conn, close=broken)

    def close(self) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None and not pool.closed:
            pool.closeall()

    def init_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in SCHEMA_STATEMENTS:
                cur.execute(stmt)
        logging.info("Schema ready (%d statements)", len(SCHEMA_STATEMENTS))

    # ------------------------------------------------------------------
    # Bans
    # ------------------------------------------------------------------
    def active_ip_ban(self, ip: str, now: int | None = None) -> dict | None:
        now = _now_ms() if now is None else now
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT ip, reason, until, created_at
                  FROM ip_bans
                 WHERE ip = %s
                   AND (until = 0 OR until > %s);
                """,
                (ip, now),
            )
            row = cur.fetchone()
        return dict(row) if row else None

    def active_user_ban(self, room: str, user_id: str, now: int | None = None) -> dict | None:
        now = _now_ms() if now is None else now
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT room, user_id, reason, until, created_at
                  FROM user_bans
                 WHERE room = %s
                   AND user_id = %s
                   AND (until = 0 OR until > %s);
                """,
                (room, user_id, now),
            )
            row = cur.fetchone()
        return dict(row) if row else None

    def ban_ip(self, ip: str, reason: str, until: int = PERMANENT, now: int | None = None) -> None:
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO ip_bans (ip, reason, until, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (ip) DO UPDATE
                   SET reason = EXCLUDED.reason,
                       until = EXCLUDED.until,
                       created_at = EXCLUDED.created_at;
                """,
                (ip, reason, int(until), now),
            )

    def ban_user(self, room: str, user_id: str, reason: str, until: int = PERMANENT, now: int | None = None) -> None:
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO user_bans (room, user_id, reason, until, created_at)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (room, user_id) DO UPDATE
                   SET reason = EXCLUDED.reason,
                       until = EXCLUDED.until,
                       created_at = EXCLUDED.created_at;
                """,
                (room, user_id, reason, int(until), now),
            )

    def unban_ip(self, ip: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM ip_bans WHERE ip = %s;", (ip,))
            return cur.rowcount > 0

    def unban_user(self, room: str, user_id: str) -> bool:
        with self._cursor() as cur:
            cur.execute("DELETE FROM user_bans WHERE room = %s AND user_id = %s;", (room, user_id))
            return cur.rowcount > 0

    def list_bans(self, now: int | None = None) -> dict:
        """Active bans: {"users": [...], "ips": [...]}."""
        now = _now_ms() if now is None else now
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT room, user_id, reason, until, created_at
                  FROM user_bans
                 WHERE until = 0 OR until > %s
                 ORDER BY created_at DESC;
                """,
                (now,),
            )
            users = [dict(r) for r in cur.fetchall()]
            cur.execute(
                """
                SELECT ip, reason, until, created_at
                  FROM ip_bans
                 WHERE until = 0 OR until > %s
                 ORDER BY created_at DESC;
                """,
                (now,),
            )
            ips = [dict(r) for r in cur.fetchall()]
        return {"users": users, "ips": ips}

    def purge_expired_bans(self, now: int | None = None) -> int:
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute("DELETE FROM user_bans WHERE until <> 0 AND until <= %s;", (now,))
            n = cur.rowcount
            cur.execute("DELETE FROM ip_bans WHERE until <> 0 AND until <= %s;", (now,))
            n += cur.rowcount
        return n

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------
    def ensure_room(self, name: str, invite_token: str, owner_user_id: str, now: int | None = None) -> tuple[dict, bool]:
        """Return (room, created). An unseen name is created with this token + owner."""
        now = _now_ms() if now is None else now
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                INSERT INTO rooms (name, invite_token, owner_user_id, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (name) DO NOTHING
                RETURNING name, invite_token, owner_user_id, created_at;
                """,
                (name, invite_token or "", owner_user_id, now),
            )
            row = cur.fetchone()
            if row:
                return dict(row), True
            cur.execute(
                "SELECT name, invite_token, owner_user_id, created_at FROM rooms WHERE name = %s;",
                (name,),
            )
            row = cur.fetchone()
        if not row:
            raise StoreError(f"room {name!r} vanished during lookup")
        return dict(row), False

    def get_room(self, name: str) -> dict | None:
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                "SELECT name, invite_token, owner_user_id, created_at FROM rooms WHERE name = %s;",
                (name,),
            )
            row = cur.fetchone()
        return dict(row) if row else None

    def set_room_token(self, name: str, invite_token: str) -> bool:
        with self._cursor() as cur:
            cur.execute("UPDATE rooms SET invite_token = %s WHERE name = %s;", (invite_token or "", name))
            return cur.rowcount > 0

    def delete_room(self, name: str) -> dict:
        """Purge a room and everything scoped to it. Returns per-table row counts."""
        counts = {}
        with self._cursor() as cur:
            for table in ("messages", "presence", "strikes", "user_bans", "reports"):
                cur.execute(f"DELETE FROM {table} WHERE room = %s;", (name,))
                counts[table] = cur.rowcount
            cur.execute("DELETE FROM rooms WHERE name = %s;", (name,))
            counts["rooms"] = cur.rowcount
        return counts

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------
    def set_presence(self, room: str, user_id: str, name: str, online: bool, now: int | None = None) -> None:
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO presence (room, user_id, name, is_online, last_seen)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (room, user_id) DO UPDATE
                   SET name = EXCLUDED.name,
                       is_online = EXCLUDED.is_online,
                       last_seen = EXCLUDED.last_seen;
                """,
                (room, user_id, name, bool(online), now),
            )

    def list_presence(self, room: str, limit: int) -> list[dict]:
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT room, user_id, name, is_online, last_seen
                  FROM presence
                 WHERE room = %s
                 ORDER BY is_online DESC, last_seen DESC
                 LIMIT %s;
                """,
                (room, int(limit)),
            )
            return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    def add_message(self, room: str, user_id: str, name: str, text: str, ts: int) -> None:
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO messages (room, user_id, name, text, ts) VALUES (%s, %s, %s, %s, %s);",
                (room, user_id, name, text, ts),
            )

    def recent_messages(self, room: str, limit: int) -> list[dict]:
        """Latest `limit` messages of a room, oldest first."""
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT room, user_id, name, text, ts
                  FROM messages
                 WHERE room = %s
                 ORDER BY ts DESC, id DESC
                 LIMIT %s;
                """,
                (room, int(limit)),
            )
            rows = [dict(r) for r in cur.fetchall()]
        rows.reverse()
        return rows

    # ------------------------------------------------------------------
    # Strikes
    # ------------------------------------------------------------------
    def add_strike(self, room: str, user_id: str, now: int | None = None) -> int:
        """Increment the (room, user) strike counter and return the new total.

        Single statement, so concurrent increments never observe the same count.
        """
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO strikes (room, user_id, strikes, updated_at)
                VALUES (%s, %s, 1, %s)
                ON CONFLICT (room, user_id) DO UPDATE
                   SET strikes = strikes.strikes + 1,
                       updated_at = EXCLUDED.updated_at
                RETURNING strikes;
                """,
                (room, user_id, now),
            )
            row = cur.fetchone()
        return int(row[0])

    def list_strikes(self, room: str) -> list[dict]:
        with self._cursor(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT room, user_id, strikes, updated_at
                  FROM strikes
                 WHERE room = %s
                 ORDER BY strikes DESC, updated_at DESC;
                """,
                (room,),
            )
            return [dict(r) for r in cur.fetchall()]

    # ------------------------------------------------------------------
    # Reports + audit
    # ------------------------------------------------------------------
    def add_report(self, room: str, reporter_user_id: str, target_user_id: str, text: str, now: int | None = None) -> None:
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO reports (room, reporter_user_id, target_user_id, text, created_at)
                VALUES (%s, %s, %s, %s, %s);
                """,
                (room, reporter_user_id, target_user_id, text, now),
            )

    def add_audit_event(self, actor: str, action: str, target: str | None, details: str | None, now: int | None = None) -> None:
        now = _now_ms() if now is None else now
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO audit_log (actor, action, target, details, created_at)
                VALUES (%s, %s, %s, %s, %s);
                """,
                (actor, action, target, details, now),
            )
