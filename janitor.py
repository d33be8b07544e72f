import logging
import threading
import time

from database import attempt, store_ready


def run_janitor_pass(store, now: int | None = None) -> int:
    """Delete expired (non-permanent) user and IP bans once. Returns rows removed."""
    if not store_ready(store):
        logging.debug("[JANITOR] store unavailable, skipping pass")
        return 0
    res = attempt("expired ban purge", store.purge_expired_bans, now, default=0)
    if res.value:
        logging.info("[JANITOR] purged %d expired bans", res.value)
    return int(res.value or 0)


def start_janitor(settings: dict, store):
    """Start a lightweight background cleanup loop.

    Permanent bans (until == 0) are never touched.
    """

    def _loop():
        while True:
            # Re-read settings each cycle so config changes take effect live.
            try:
                interval = int(settings.get("janitor_interval_seconds", 300))
            except (TypeError, ValueError):
                interval = 300
            interval = max(10, min(interval, 3600))

            run_janitor_pass(store)
            time.sleep(interval)

    t = threading.Thread(target=_loop, name="guardchat_janitor", daemon=True)
    t.start()
    return t
