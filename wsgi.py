"""wsgi.py

Gunicorn entrypoint for GuardChat.

Run (example):
  GUARDCHAT_SOCKETIO_ASYNC=eventlet \
  GUARDCHAT_SOCKETIO_MESSAGE_QUEUE=redis://127.0.0.1:6379/0 \
  gunicorn -c gunicorn_conf.py wsgi:app

Notes:
- For multi-worker Socket.IO, a Redis message queue is required.
- Do NOT start the janitor loop inside Gunicorn workers; run janitor_runner.py
  as a separate systemd service.
- The session table and rate limiter are per worker. With several workers,
  enable sticky sessions at the proxy.
"""

from __future__ import annotations

import os

# ---- Ensure eventlet monkey_patch happens as early as possible ----
_async = (os.environ.get("GUARDCHAT_SOCKETIO_ASYNC", "auto") or "auto").strip().lower()
if _async in {"auto", "eventlet"}:
    try:
        import eventlet  # type: ignore

        eventlet.monkey_patch()
    except ImportError:
        # Without eventlet GuardChat falls back to threading.
        pass

from config import apply_env_overrides, load_settings, settings_path
from main import configure_logging
from server_init import create_app

_settings_path = settings_path()
_settings = load_settings(_settings_path)
apply_env_overrides(_settings)
configure_logging(_settings)

# Create the Flask app + Socket.IO integration.
app, socketio = create_app(_settings, settings_file=_settings_path)

# Expose these for tooling / introspection.
app.config["GUARDCHAT_GUNICORN"] = True
app.config["GUARDCHAT_SETTINGS_PATH"] = str(_settings_path)
