#!/usr/bin/env python3
"""adminctl.py

Owner/operator tooling for GuardChat rooms and bans. Talks to the database
directly; the running relay picks changes up on the next join / connect.

Usage:
  # Create a room (invite-only when --token is given)
  python adminctl.py create-room <room> [--token T] [--owner U]

  # Rotate or clear ("") the invite token of a room
  python adminctl.py set-token <room> <token>

  # Delete a room with its messages, presence, strikes, bans and reports
  python adminctl.py delete-room <room>

  # Lift bans
  python adminctl.py unban-user <room> <user_id>
  python adminctl.py unban-ip <ip>

  # Inspect
  python adminctl.py bans
  python adminctl.py strikes <room>

Options:
  --dsn DSN        Override Postgres DSN (otherwise env, server_config.json, or constants.py fallback)
  --config PATH    Settings file to read the DSN from
"""

from __future__ import annotations

import argparse
from datetime import datetime

from config import apply_env_overrides, load_settings, settings_path
from constants import MAX_ROOM_CHARS, MAX_TOKEN_CHARS, PERMANENT, redact_postgres_dsn, sanitize_postgres_dsn
from database import ChatStore, StoreError
from security import log_audit_event

ACTOR = "adminctl"


def _fmt_ms(ms) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(int(ms) / 1000).isoformat(timespec="seconds")


def _fmt_until(until) -> str:
    return "permanent" if int(until or 0) == PERMANENT else _fmt_ms(until)


def cmd_create_room(store, room: str, token: str, owner: str) -> int:
    room_row, created = store.ensure_room(room, token, owner)
    if not created:
        print(f"❌ Room already exists: {room} (use set-token to change its invite token)")
        return 1
    log_audit_event(store, ACTOR, "create_room", room, f"owner={owner}; invite_only={bool(token)}")
    kind = "invite-only" if room_row.get("invite_token") else "open"
    print(f"✅ Created {kind} room '{room}' (owner={owner})")
    return 0


def cmd_set_token(store, room: str, token: str) -> int:
    if not store.set_room_token(room, token):
        print(f"❌ Room not found: {room}")
        return 1
    log_audit_event(store, ACTOR, "set_token", room, f"invite_only={bool(token)}")
    print(f"✅ Room '{room}' is now {'invite-only' if token else 'open'}")
    return 0


def cmd_delete_room(store, room: str) -> int:
    counts = store.delete_room(room)
    if not any(counts.values()):
        print(f"❌ Room not found: {room}")
        return 1
    log_audit_event(store, ACTOR, "delete_room", room, ", ".join(f"{k}={v}" for k, v in counts.items()))
    print(f"✅ Deleted room '{room}': " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    return 0


def cmd_unban_user(store, room: str, user_id: str) -> int:
    if not store.unban_user(room, user_id):
        print(f"❌ No ban for {user_id} in {room}")
        return 1
    log_audit_event(store, ACTOR, "unban_user", f"{room}/{user_id}")
    print(f"✅ Unbanned {user_id} in {room}")
    return 0


def cmd_unban_ip(store, ip: str) -> int:
    if not store.unban_ip(ip):
        print(f"❌ No ban for IP {ip}")
        return 1
    log_audit_event(store, ACTOR, "unban_ip", ip)
    print(f"✅ Unbanned IP {ip}")
    return 0


def cmd_bans(store) -> int:
    bans = store.list_bans()
    if not bans["users"] and not bans["ips"]:
        print("(no active bans)")
        return 0
    for b in bans["users"]:
        print(f"- user {b['user_id']} in {b['room']}: {b['reason']} (until {_fmt_until(b['until'])})")
    for b in bans["ips"]:
        print(f"- ip {b['ip']}: {b['reason']} (until {_fmt_until(b['until'])})")
    return 0


def cmd_strikes(store, room: str) -> int:
    rows = store.list_strikes(room)
    if not rows:
        print(f"(no strikes in {room})")
        return 0
    for r in rows:
        print(f"- {r['user_id']}: {r['strikes']} (last {_fmt_ms(r['updated_at'])})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage GuardChat rooms and bans.")
    parser.add_argument("--dsn", default=None, help="Override Postgres DSN")
    parser.add_argument("--config", default=None, help="Settings file to read the DSN from")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("create-room", help="Create a room")
    p.add_argument("room")
    p.add_argument("--token", default="", help="invite token (room is open when empty)")
    p.add_argument("--owner", default=ACTOR)

    p = sub.add_parser("set-token", help="Set or clear a room's invite token")
    p.add_argument("room")
    p.add_argument("token")

    p = sub.add_parser("delete-room", help="Delete a room and its data")
    p.add_argument("room")

    p = sub.add_parser("unban-user", help="Lift a per-room user ban")
    p.add_argument("room")
    p.add_argument("user_id")

    p = sub.add_parser("unban-ip", help="Lift an IP ban")
    p.add_argument("ip")

    sub.add_parser("bans", aliases=["ls"], help="List active bans")

    p = sub.add_parser("strikes", help="Show strike counters of a room")
    p.add_argument("room")
    return parser


def _store_from_args(args) -> ChatStore:
    settings = load_settings(settings_path(args.config))
    apply_env_overrides(settings)
    if args.dsn:
        settings["database_url"] = str(sanitize_postgres_dsn(args.dsn))
    # One shot: never wait between pool attempts.
    settings["db_retry_seconds"] = 0
    return ChatStore.from_settings(settings)


def main(argv=None, store=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    room = getattr(args, "room", None)
    if room is not None and not (0 < len(room) <= MAX_ROOM_CHARS):
        parser.error(f"room must be 1-{MAX_ROOM_CHARS} characters")
    token = getattr(args, "token", None)
    if token is not None and len(token) > MAX_TOKEN_CHARS:
        parser.error(f"token must be at most {MAX_TOKEN_CHARS} characters")

    owns_store = store is None
    if owns_store:
        store = _store_from_args(args)
    if not store.available():
        print("❌ Could not connect to Postgres.")
        print(f"DSN used: {redact_postgres_dsn(getattr(store, 'dsn', None))}")
        print("Tip: set DB_CONNECTION_STRING to your real DSN, or pass --dsn <dsn>.")
        return 3

    try:
        if args.cmd == "create-room":
            return cmd_create_room(store, args.room, args.token, args.owner)
        if args.cmd == "set-token":
            return cmd_set_token(store, args.room, args.token)
        if args.cmd == "delete-room":
            return cmd_delete_room(store, args.room)
        if args.cmd == "unban-user":
            return cmd_unban_user(store, args.room, args.user_id)
        if args.cmd == "unban-ip":
            return cmd_unban_ip(store, args.ip)
        if args.cmd in ("bans", "ls"):
            return cmd_bans(store)
        if args.cmd == "strikes":
            return cmd_strikes(store, args.room)
        parser.error("Unknown command")
        return 2
    except StoreError as e:
        print(f"❌ Database error: {e}")
        return 4
    finally:
        if owns_store:
            store.close()


if __name__ == "__main__":
    raise SystemExit(main())
