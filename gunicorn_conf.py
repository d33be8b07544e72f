"""gunicorn_conf.py

Default Gunicorn config for GuardChat + Flask-SocketIO using Eventlet.

Environment variables:
  GUARDCHAT_BIND=0.0.0.0:5000
  GUARDCHAT_WORKERS=1
  GUARDCHAT_GUNICORN_LOGLEVEL=info
  GUARDCHAT_GUNICORN_ACCESSLOG=-
  GUARDCHAT_GUNICORN_ERRORLOG=-
  GUARDCHAT_GUNICORN_TIMEOUT=60

Recommended with more than one worker:
  GUARDCHAT_SOCKETIO_ASYNC=eventlet
  REDIS_URL=redis://127.0.0.1:6379/0
"""

from __future__ import annotations

import os

bind = os.environ.get("GUARDCHAT_BIND", "0.0.0.0:5000")
# Sessions and rate-limit state live in process memory.
workers = int(os.environ.get("GUARDCHAT_WORKERS", "1"))
worker_class = "eventlet"

# WebSockets keep connections open; avoid overly low timeouts.
timeout = int(os.environ.get("GUARDCHAT_GUNICORN_TIMEOUT", "60"))
keepalive = int(os.environ.get("GUARDCHAT_GUNICORN_KEEPALIVE", "5"))

loglevel = os.environ.get("GUARDCHAT_GUNICORN_LOGLEVEL", "info")
accesslog = os.environ.get("GUARDCHAT_GUNICORN_ACCESSLOG", "-")
errorlog = os.environ.get("GUARDCHAT_GUNICORN_ERRORLOG", "-")

# X-Forwarded-For is trusted for client IPs (connect gate and IP bans).
forwarded_allow_ips = os.environ.get("GUARDCHAT_FORWARDED_ALLOW_IPS", "*")
