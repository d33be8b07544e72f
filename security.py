#!/usr/bin/env python3
"""security.py

Access-key checks, client IP resolution and audit logging.
"""

from __future__ import annotations

import hmac
import logging

from database import attempt, store_ready


# ────────────────────────────────────────────────────────────
# Access keys / invite tokens
# ────────────────────────────────────────────────────────────

def keys_match(presented: str | None, expected: str | None) -> bool:
    """Exact, constant-time comparison of two shared secrets."""
    if presented is None or expected is None:
        return False
    return hmac.compare_digest(str(presented).encode("utf-8"), str(expected).encode("utf-8"))


def client_ip(forwarded_for: str | None, remote_addr: str | None) -> str:
    """First hop of X-Forwarded-For, else the transport address."""
    xff = (forwarded_for or "").split(",")[0].strip()
    return xff or (remote_addr or "").strip() or "unknown"


# ────────────────────────────────────────────────────────────
# Audit logging
# ────────────────────────────────────────────────────────────

def log_audit_event(store, actor: str, action: str, target: str | None = None, details: str | None = None) -> bool:
    """Insert an audit log entry (best-effort). Returns True if it was stored."""
    logging.info("[audit] actor=%s action=%s target=%s details=%s", actor, action, target, details)
    if not store_ready(store):
        return False
    return attempt("audit log", store.add_audit_event, actor, action, target, details).ok
