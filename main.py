#!/usr/bin/env python3
"""main.py

GuardChat server entrypoint.

Settings come from ``server_config.json`` (plaintext JSON, see ``config.py``).
Keep secrets out of that file by using environment variables
(``DATABASE_URL``, ``DB_CONNECTION_STRING``, ``GUARDCHAT_ACCESS_KEY``,
``SECRET_KEY``).
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from config import apply_env_overrides, load_settings, settings_path
from database import ChatStore
from server_init import run_web_server


def configure_logging(settings: dict) -> None:
    """Configure root logging: stdout always, plus a file when log_file_path is set."""
    log_level_str = str(settings.get("log_level", "INFO")).upper()
    log_format = settings.get(
        "log_format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    log_file_path = settings.get("log_file_path") or ""
    log_level = getattr(logging, log_level_str, logging.INFO)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        logging.basicConfig(level=log_level, format=log_format, filename=log_file_path, filemode="a")
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(handler)
    else:
        logging.basicConfig(level=log_level, format=log_format, stream=sys.stdout)
    logging.info("Logging configured (level=%s)", log_level_str)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="GuardChat server")
    p.add_argument("--config", default=None, help="path to server config JSON (default: $GUARDCHAT_CONFIG or server_config.json)")
    p.add_argument("--init-db", action="store_true", help="create the database schema and exit")
    return p.parse_args(argv)


def init_db(settings: dict) -> int:
    store = ChatStore.from_settings(settings)
    # available() opens the pool and runs the schema bootstrap.
    if not store.available():
        logging.error("Database unreachable; schema not created")
        return 1
    store.close()
    return 0


def main(argv=None) -> None:
    args = parse_args(argv)
    path = settings_path(args.config)

    settings = load_settings(path)
    apply_env_overrides(settings)
    configure_logging(settings)

    if args.init_db:
        raise SystemExit(init_db(settings))

    run_web_server(settings, settings_file=path)


if __name__ == "__main__":
    main()
