"""Session controller: connect gate, join, message and disconnect flows.

Decides for every connection and every chat message whether it is admitted,
broadcast, warned, kicked or banned. Persistence is best-effort throughout:
with the store down the relay keeps working from the in-memory session table,
and only ban/invite checks, history, message storage and strike escalation
are skipped.

Outbound `blocked` notices carry {"reason", "action"} where action is one of
"deny" (join refused), "warn" (message dropped, still connected), "kick",
"ban" or "drop" (message dropped, no escalation possible).
"""

from __future__ import annotations

import logging
from typing import Callable

from constants import (
    HISTORY_LIMIT,
    MAX_MESSAGE_CHARS,
    PERMANENT,
    PRESENCE_PAGE_SIZE,
    RATE_LIMIT_INTERVAL_MS,
    REASON_ILLEGAL_SALE,
    REASON_REPEATED_ABUSE,
    STRIKES_BAN,
    STRIKES_KICK,
)
from database import attempt, store_ready
from moderation import Verdict, classify
from realtime.events import ChatEvent, JoinEvent, ReportEvent, TypingEvent
from realtime.presence import PresenceRegistry
from realtime.ratelimit import RateLimiter, wall_clock_ms
from realtime.state import Session, SessionTable
from security import client_ip, keys_match, log_audit_event


class SessionController:
    def __init__(self, store, transport, settings: dict | None = None, clock: Callable[[], int] | None = None):
        settings = settings or {}
        self.store = store
        self.transport = transport
        self.clock = clock or wall_clock_ms

        self.access_key = settings.get("access_key") or ""
        self.history_on_join = bool(settings.get("history_on_join", False))
        self.history_limit = int(settings.get("history_limit", HISTORY_LIMIT))

        self.sessions = SessionTable()
        self.limiter = RateLimiter(
            int(settings.get("rate_limit_interval_ms", RATE_LIMIT_INTERVAL_MS)),
            clock=self.clock,
        )
        self.presence = PresenceRegistry(
            store,
            self.sessions,
            transport,
            page_size=int(settings.get("presence_page_size", PRESENCE_PAGE_SIZE)),
        )

    def store_ok(self) -> bool:
        return store_ready(self.store)

    # ------------------------------------------------------------------
    # Connect gate
    # ------------------------------------------------------------------
    def admit_connection(self, sid: str, presented_key: str | None, forwarded_for: str | None, remote_addr: str | None) -> str | None:
        """Return None to admit, or the refusal reason ("forbidden" / "banned")."""
        if self.access_key and not keys_match(presented_key, self.access_key):
            logging.info("[gate] %s refused: bad access key", sid)
            return "forbidden"

        ip = client_ip(forwarded_for, remote_addr)
        db_ok = self.store_ok()
        if db_ok:
            res = attempt("ip ban lookup", self.store.active_ip_ban, ip, self.clock())
            if res.ok and res.value:
                logging.info("[gate] %s refused: ip %s is banned (%s)", sid, ip, res.value.get("reason"))
                return "banned"

        self.sessions.open(sid, ip)
        self.transport.send(sid, "db_status", {"ok": db_ok})
        return None

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------
    def refuse_malformed(self, sid: str, error: str) -> None:
        logging.info("[join] %s sent a malformed join: %s", sid, error)
        self._block(sid, "invalid join request", "deny", close=True)

    def join(self, sid: str, event: JoinEvent) -> Session | None:
        current = self.sessions.get(sid)
        if current is not None:
            if current.room == event.room and current.user_id == event.user_id:
                return current
            self.sessions.unbind(sid)
            self.transport.leave(sid, current.room)
            self._announce_departure(current)

        if not event.age_ok:
            return self._deny(sid, event, "age confirmation required")

        now = self.clock()
        db_ok = self.store_ok()
        if db_ok:
            ban = attempt("user ban lookup", self.store.active_user_ban, event.room, event.user_id, now)
            if ban.ok and ban.value:
                return self._deny(sid, event, "banned from this room", action="ban")

            res = attempt("room lookup", self.store.ensure_room, event.room, event.invite_token, event.user_id, now)
            if res.ok:
                room, created = res.value
                if created:
                    logging.info("[join] room %r created by %s (invite-only=%s)", event.room, event.user_id, bool(room.get("invite_token")))
                elif room.get("invite_token") and not keys_match(event.invite_token, room["invite_token"]):
                    return self._deny(sid, event, "invalid invite token")

            attempt("presence upsert", self.store.set_presence, event.room, event.user_id, event.name, True, now)

        session = self.sessions.bind(sid, event.room, event.user_id, event.name, now)
        if session is None:
            # Connection closed while the store calls were in flight.
            logging.debug("[join] %s went away mid-join", sid)
            if db_ok:
                attempt("presence downgrade", self.store.set_presence, event.room, event.user_id, event.name, False, self.clock())
            return None

        self.transport.enter(sid, event.room)
        logging.info("[join] %s (%s) joined %r", event.user_id, event.name, event.room)

        if self.history_on_join and db_ok:
            res = attempt("history fetch", self.store.recent_messages, event.room, self.history_limit)
            if res.ok:
                self.transport.send(sid, "history", {
                    "room": event.room,
                    "messages": [_public_message(m) for m in res.value],
                })

        self.transport.broadcast(event.room, "system", {"text": f"{event.name} joined", "ts": now})
        self.presence.publish(event.room)
        return session

    def _deny(self, sid: str, event: JoinEvent, reason: str, action: str = "deny") -> None:
        logging.info("[join] %s refused for %s in %r: %s", sid, event.user_id, event.room, reason)
        self._block(sid, reason, action, close=True)
        return None

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------
    def message(self, sid: str, event: ChatEvent) -> Verdict | None:
        """Run one chat message through the pipeline. Returns the verdict, None if dropped early."""
        session = self.sessions.get(sid)
        if session is None:
            return None

        text = (event.text or "").strip()[:MAX_MESSAGE_CHARS]
        if not text:
            return None
        if not self.limiter.allow(sid):
            logging.debug("[chat] %s rate limited", sid)
            return None

        verdict = classify(text)
        if verdict is Verdict.ILLEGAL_SALE:
            logging.warning("[mod] illegal sale from %s in %r, banning", session.user_id, session.room)
            self._ban(session, REASON_ILLEGAL_SALE)
            self._block(sid, "banned", "ban", close=True)
        elif verdict is Verdict.ABUSIVE:
            self._strike(session)
        else:
            self._deliver(session, text)
        return verdict

    def _strike(self, session: Session) -> None:
        sid = session.sid
        if not self.store_ok():
            # No escalation without persistence.
            self._block(sid, "message blocked", "drop")
            return
        res = attempt("strike increment", self.store.add_strike, session.room, session.user_id, self.clock())
        if not res.ok:
            self._block(sid, "message blocked", "drop")
            return

        total = int(res.value)
        logging.warning("[mod] abusive message from %s in %r (strike %d)", session.user_id, session.room, total)
        if total >= STRIKES_BAN:
            self._ban(session, REASON_REPEATED_ABUSE)
            self._block(sid, "banned", "ban", close=True)
        elif total == STRIKES_KICK:
            self._block(sid, f"kicked ({STRIKES_KICK}/{STRIKES_BAN})", "kick", close=True)
        else:
            self._block(sid, f"message blocked ({total}/{STRIKES_BAN})", "warn")

    def _ban(self, session: Session, reason: str) -> None:
        if not self.store_ok():
            logging.warning("[mod] store unavailable, ban of %s in %r not recorded", session.user_id, session.room)
            return
        now = self.clock()
        ip = self.sessions.ip_of(session.sid)
        if ip and ip != "unknown":
            attempt("ip ban", self.store.ban_ip, ip, reason, PERMANENT, now)
        attempt("user ban", self.store.ban_user, session.room, session.user_id, reason, PERMANENT, now)
        log_audit_event(self.store, "system", "ban", f"{session.room}/{session.user_id}", f"reason={reason}; ip={ip}")

    def _deliver(self, session: Session, text: str) -> None:
        ts = self.clock()
        if self.store_ok():
            attempt("message insert", self.store.add_message, session.room, session.user_id, session.name, text, ts)
        self.transport.broadcast(session.room, "chat", {
            "room": session.room,
            "userId": session.user_id,
            "name": session.name,
            "text": text,
            "ts": ts,
        })

    # ------------------------------------------------------------------
    # Typing + reports
    # ------------------------------------------------------------------
    def typing(self, sid: str, event: TypingEvent) -> None:
        session = self.sessions.get(sid)
        if session is None:
            return
        self.transport.broadcast(
            session.room,
            "typing",
            {"name": session.name, "isTyping": event.is_typing},
            skip_sid=sid,
        )

    def report(self, sid: str, event: ReportEvent) -> bool:
        session = self.sessions.get(sid)
        if session is None or not self.store_ok():
            return False
        res = attempt(
            "report insert",
            self.store.add_report,
            session.room,
            session.user_id,
            event.target_user_id,
            event.text,
            self.clock(),
        )
        return res.ok

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------
    def disconnect(self, sid: str) -> Session | None:
        self.limiter.forget(sid)
        session = self.sessions.close(sid)
        if session is None:
            return None
        self._announce_departure(session)
        return session

    def _announce_departure(self, session: Session) -> None:
        now = self.clock()
        if self.store_ok():
            attempt("presence downgrade", self.store.set_presence, session.room, session.user_id, session.name, False, now)
        self.presence.publish(session.room)
        self.transport.broadcast(session.room, "system", {"text": f"{session.name} left", "ts": now})
        logging.info("[leave] %s (%s) left %r", session.user_id, session.name, session.room)

    # ------------------------------------------------------------------
    def _block(self, sid: str, reason: str, action: str, close: bool = False) -> None:
        self.transport.send(sid, "blocked", {"reason": reason, "action": action})
        if close:
            self.transport.close(sid)


def _public_message(row: dict) -> dict:
    return {
        "room": row.get("room"),
        "userId": row.get("user_id"),
        "name": row.get("name"),
        "text": row.get("text"),
        "ts": row.get("ts"),
    }
