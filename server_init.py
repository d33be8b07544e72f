#!/usr/bin/env python3
"""
server_init.py
Builds and runs the GuardChat Flask + Socket.IO application.

`create_app()` wires the store, the session controller and the Socket.IO
handlers together and does not start a server, so it is safe to import from
the Gunicorn `wsgi.py` module and from tests.
"""

from __future__ import annotations

import os
import logging

# Optional WebSocket support
# - Default: auto (use eventlet if available, otherwise fall back to threading/polling)
# - Override with: GUARDCHAT_SOCKETIO_ASYNC=threading|eventlet
GUARDCHAT_SOCKETIO_ASYNC = os.environ.get("GUARDCHAT_SOCKETIO_ASYNC", "auto").strip().lower()
_EVENTLET_AVAILABLE = False
if GUARDCHAT_SOCKETIO_ASYNC in {"auto", "eventlet"}:
    try:
        import eventlet  # type: ignore

        eventlet.monkey_patch()
        _EVENTLET_AVAILABLE = True
    except ImportError:
        _EVENTLET_AVAILABLE = False
import secrets
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask_socketio import SocketIO

from constants import APP_VERSION, get_db_connection_string, postgres_dsn_parts, redact_postgres_dsn
from database import ChatStore, store_ready
from janitor import start_janitor
from realtime.controller import SessionController
from realtime.transport import SocketIOTransport


def _get_socketio_message_queue(settings: Dict[str, Any]) -> Optional[str]:
    """Resolve the Socket.IO message queue URL.

    Priority:
      1) GUARDCHAT_SOCKETIO_MESSAGE_QUEUE (already folded into settings by apply_env_overrides)
      2) server_config.json -> socketio_message_queue
      3) REDIS_URL (common convention)
    """
    v = (settings.get("socketio_message_queue") or "").strip()
    if v:
        return v

    v = (os.environ.get("REDIS_URL") or "").strip()
    return v or None


def _require_redis_connectivity(redis_url: str) -> None:
    """Fail fast if a Redis message queue is configured but not reachable."""
    if not redis_url:
        return

    if not (redis_url.startswith("redis://") or redis_url.startswith("rediss://")):
        # Only validate redis:// style URLs here.
        return

    import redis

    try:
        client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=1,
            socket_timeout=1,
            health_check_interval=10,
        )
        client.ping()
        logging.info("[socketio] Redis message queue reachable")
    except redis.RedisError as exc:
        logging.critical(
            "[socketio] Redis message queue configured (%s) but Redis is not reachable: %s",
            redis_url,
            exc,
        )
        raise SystemExit(2)


def _normalize_cors_origins(val):
    if val is None:
        return None
    if isinstance(val, str):
        raw = val.strip()
        if not raw:
            return None
        # Support comma-separated strings
        if "," in raw:
            items = [x.strip() for x in raw.split(",") if x.strip()]
            return items or None
        return raw
    if isinstance(val, (list, tuple, set)):
        items = [str(x).strip() for x in val if str(x).strip()]
        return items or None
    return None


def _resolve_async_mode() -> str:
    async_mode = "threading"
    if GUARDCHAT_SOCKETIO_ASYNC == "eventlet" and not _EVENTLET_AVAILABLE:
        logging.warning("[socketio] GUARDCHAT_SOCKETIO_ASYNC=eventlet but eventlet is not installed; falling back to threading")
    if GUARDCHAT_SOCKETIO_ASYNC in {"auto", "eventlet"} and _EVENTLET_AVAILABLE:
        async_mode = "eventlet"
    return async_mode


def _log_startup_banner(settings: Dict[str, Any], settings_file: Optional[Path], store) -> None:
    """Log a boot banner that makes 'wrong DB / wrong config' obvious."""
    dsn = get_db_connection_string(settings)
    parts = postgres_dsn_parts(dsn)

    logging.info("==================== GuardChat Boot ====================")
    logging.info("GuardChat version: %s", APP_VERSION)
    logging.info("Settings file: %s (exists=%s)", str(settings_file) if settings_file else "<none>",
                 bool(settings_file and settings_file.exists()))
    logging.info(
        "Configured DB: host=%s port=%s db=%s user=%s",
        parts.get("host"), parts.get("port"), parts.get("db"), parts.get("user"),
    )
    logging.info("Configured DSN: %s", redact_postgres_dsn(dsn))
    logging.info("Database available: %s", store_ready(store))
    logging.info("Access key required: %s", bool(settings.get("access_key")))
    logging.info("=========================================================")


def create_app(
    settings: Dict[str, Any],
    store=None,
    settings_file: Optional[Path] | None = None,
    clock: Optional[Callable[[], int]] = None,
) -> tuple[Flask, SocketIO]:
    """Create and configure the Flask + Socket.IO application."""

    settings_file = Path(settings_file) if isinstance(settings_file, str) else settings_file

    # ───── Flask App Core ─────
    app = Flask(__name__)
    app.config["GUARDCHAT_SETTINGS_FILE"] = str(settings_file) if settings_file else None
    app.config["GUARDCHAT_SETTINGS"] = settings
    app.secret_key = _ensure_secret_key(settings)

    # ───── Store ─────
    # The first availability probe opens the pool and creates the schema.
    # A database that is down at boot is retried lazily; the relay still starts.
    if store is None:
        store = ChatStore.from_settings(settings)
    _log_startup_banner(settings, settings_file, store)
    app.config["GUARDCHAT_STORE"] = store

    # ───── SocketIO Setup ─────
    async_mode = _resolve_async_mode()
    app.config["GUARDCHAT_SOCKETIO_ASYNC_MODE"] = async_mode

    message_queue = _get_socketio_message_queue(settings)
    if message_queue:
        _require_redis_connectivity(message_queue)

    socketio = SocketIO(
        app,
        async_mode=async_mode,
        cors_allowed_origins=_normalize_cors_origins(settings.get("cors_origins")),
        logger=False,
        engineio_logger=False,
        ping_interval=20,
        ping_timeout=15,
        message_queue=message_queue,
        # Events of one connection are handled in arrival order.
        async_handlers=False,
    )
    app.config["GUARDCHAT_SOCKETIO"] = socketio

    @socketio.on_error_default  # applies to all namespaces
    def _socketio_default_error_handler(e):
        sid = getattr(request, "sid", None)
        logging.exception("Socket.IO handler error (sid=%s): %s", sid, e)

    controller = SessionController(store, SocketIOTransport(socketio), settings, clock=clock)
    app.config["GUARDCHAT_CONTROLLER"] = controller

    # ───── Routes ─────
    @app.get("/healthz")
    def healthz():
        return jsonify({"ok": True, "db": store_ready(store), "version": APP_VERSION})

    from socket_handlers import register_socketio_handlers
    register_socketio_handlers(socketio, controller)

    return app, socketio


def run_web_server(settings: Dict[str, Any], settings_file: Optional[Path] | None = None) -> None:
    """Bootstrap the Flask-SocketIO app, attach handlers, then run it."""

    app, socketio = create_app(settings, settings_file=settings_file)

    # ───── Run Server (dev / single-process) ─────
    host = settings.get("host") or "0.0.0.0"
    port = int(settings.get("port") or 5000)
    debug = bool(settings.get("debug", False))

    logging.info("Starting GuardChat on http://%s:%s (debug=%s)", host, port, debug)

    # Background janitor: purges expired bans.
    # NOTE: When running under Gunicorn with multiple workers, run this as a
    # separate service (see janitor_runner.py) to avoid N janitors.
    if settings.get("janitor_enabled", True):
        start_janitor(settings, app.config["GUARDCHAT_STORE"])

    # Reduce console spam from long-polling by filtering Werkzeug access logs for /socket.io.
    class _GuardChatSocketIOAccessFilter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:  # type: ignore
            return "/socket.io/" not in record.getMessage()

    logging.getLogger("werkzeug").addFilter(_GuardChatSocketIOAccessFilter())

    use_reloader = bool(debug and app.config.get("GUARDCHAT_SOCKETIO_ASYNC_MODE") == "threading")
    socketio.run(
        app,
        host=host,
        port=port,
        debug=debug,
        use_reloader=use_reloader,
        log_output=False,
        allow_unsafe_werkzeug=True,
    )


# ───── Helpers ─────
def _ensure_secret_key(settings: Dict[str, Any]) -> str:
    key = settings.get("secret_key") or os.getenv("SECRET_KEY")
    if key:
        return key

    key = secrets.token_urlsafe(64)
    settings["secret_key"] = key
    logging.warning("Generated a one-off secret_key (NOT saved). Set SECRET_KEY to keep it stable.")
    return key
