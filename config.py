#!/usr/bin/env python3
"""config.py

Settings for the GuardChat relay.

``server_config.json`` is a plaintext JSON file. Anything missing from it falls
back to :func:`get_default_settings`. Secrets (DB DSN, access key, Flask secret)
are better supplied through the environment, see :func:`apply_env_overrides`.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path

from constants import (
    CONFIG_FILE,
    DEFAULT_DB_CONNECTION_STRING,
    HISTORY_LIMIT,
    PRESENCE_PAGE_SIZE,
    RATE_LIMIT_INTERVAL_MS,
    sanitize_postgres_dsn,
)


def get_default_settings() -> dict:
    return {
        "host": "0.0.0.0",
        "port": 5000,
        "debug": False,
        "secret_key": "",
        "database_url": DEFAULT_DB_CONNECTION_STRING,
        "db_pool_min": 1,
        "db_pool_max": 10,
        "db_connect_timeout": 3,
        "db_statement_timeout_ms": 5000,
        "db_retry_seconds": 30,
        # Shared deployment key; empty means the connect gate is open.
        "access_key": "",
        "history_on_join": False,
        "history_limit": HISTORY_LIMIT,
        "presence_page_size": PRESENCE_PAGE_SIZE,
        "rate_limit_interval_ms": RATE_LIMIT_INTERVAL_MS,
        "cors_origins": None,
        "socketio_message_queue": "",
        "janitor_enabled": True,
        "janitor_interval_seconds": 300,
        "log_level": "INFO",
        "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "log_file_path": "",
    }


def settings_path(cli_value: str | None = None) -> Path:
    """Resolve the settings file: --config, then GUARDCHAT_CONFIG, then the default."""
    return Path(cli_value or os.getenv("GUARDCHAT_CONFIG") or CONFIG_FILE)


def load_settings(path: Path) -> dict:
    """Load settings from JSON, merged over the defaults."""
    settings = get_default_settings()
    if not path.exists():
        return settings

    try:
        with path.open("r", encoding="utf-8") as fp:
            loaded = json.load(fp)
    except (OSError, ValueError) as exc:
        logging.warning("Could not parse %s as JSON: %s", path, exc)
        # Keep the broken file around so it is not silently overwritten later.
        ts = datetime.now().strftime("%Y%m%d-%H%M%S")
        bad_path = path.with_suffix(path.suffix + f".bad-{ts}")
        try:
            path.rename(bad_path)
            logging.warning("Backed up invalid settings file to: %s", bad_path)
        except OSError as e2:
            logging.warning("Could not back up invalid settings file: %s", e2)
        return settings

    if not isinstance(loaded, dict):
        logging.warning("%s does not hold a JSON object; using defaults", path)
        return settings

    settings.update(loaded)
    return settings


def save_settings(path: Path, settings: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fp:
        json.dump(settings, fp, indent=2)
    logging.info("Configuration saved to %s", path)


def _bool_env(*names: str) -> bool | None:
    for n in names:
        v = os.getenv(n)
        if v is None:
            continue
        v = v.strip().lower()
        if v in ("1", "true", "yes", "y", "on"):
            return True
        if v in ("0", "false", "no", "n", "off"):
            return False
    return None


def _str_env(*names: str) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v.strip()
    return None


def _int_env(*names: str) -> int | None:
    v = _str_env(*names)
    if v is None:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def apply_env_overrides(settings: dict) -> dict:
    """Apply env overrides for secrets and runtime deployment."""

    # Prefer DB env vars for safety.
    db = os.getenv("DB_CONNECTION_STRING") or os.getenv("DATABASE_URL")
    if db:
        settings["database_url"] = str(sanitize_postgres_dsn(db))

    secret = os.getenv("SECRET_KEY")
    if secret:
        settings["secret_key"] = secret

    access_key = _str_env("GUARDCHAT_ACCESS_KEY")
    if access_key:
        settings["access_key"] = access_key

    history = _bool_env("GUARDCHAT_HISTORY_ON_JOIN")
    if history is not None:
        settings["history_on_join"] = history

    history_limit = _int_env("GUARDCHAT_HISTORY_LIMIT")
    if history_limit:
        settings["history_limit"] = history_limit

    interval = _int_env("GUARDCHAT_RATE_LIMIT_MS")
    if interval is not None:
        settings["rate_limit_interval_ms"] = interval

    log_level = _str_env("GUARDCHAT_LOG_LEVEL", "LOG_LEVEL")
    if log_level:
        settings["log_level"] = log_level.upper()

    host = _str_env("GUARDCHAT_HOST")
    if host:
        settings["host"] = host

    port = _int_env("GUARDCHAT_PORT", "PORT")
    if port:
        settings["port"] = port

    mq = _str_env("GUARDCHAT_SOCKETIO_MESSAGE_QUEUE")
    if mq:
        settings["socketio_message_queue"] = mq

    janitor = _bool_env("GUARDCHAT_JANITOR_ENABLED")
    if janitor is not None:
        settings["janitor_enabled"] = janitor

    return settings
