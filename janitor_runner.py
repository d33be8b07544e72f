#!/usr/bin/env python3
"""janitor_runner.py

Run the GuardChat ban-expiry loop as a dedicated process.

Under Gunicorn with N workers, starting the janitor thread inside each worker
creates N janitors. Run this once as its own service instead.

Usage:
  python janitor_runner.py --config server_config.json

Or via env:
  GUARDCHAT_CONFIG=/path/to/server_config.json python janitor_runner.py
"""

from __future__ import annotations

import argparse
import time

from config import apply_env_overrides, load_settings, settings_path
from database import ChatStore
from janitor import run_janitor_pass, start_janitor
from main import configure_logging


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="GuardChat janitor runner")
    p.add_argument("--config", default=None, help="path to server config JSON")
    p.add_argument("--once", action="store_true", help="run a single pass and exit")
    return p.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)

    settings = load_settings(settings_path(args.config))
    apply_env_overrides(settings)

    # Use the same logging configuration as the server.
    configure_logging(settings)

    store = ChatStore.from_settings(settings)
    if args.once:
        run_janitor_pass(store)
        store.close()
        return

    start_janitor(settings, store)
    # Keep the process alive forever.
    while True:
        time.sleep(3600)


if __name__ == "__main__":
    main()
