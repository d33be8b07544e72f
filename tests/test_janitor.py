from __future__ import annotations

from janitor import run_janitor_pass
from tests.fakes import MemoryStore


class TestJanitorPass:
    def test_purges_only_expired_bans(self) -> None:
        store = MemoryStore()
        store.ban_user("lobby", "expired", "repeated abuse", until=100)
        store.ban_user("lobby", "forever", "illegal sale", until=0)
        store.ban_user("lobby", "later", "repeated abuse", until=10_000)
        store.ban_ip("203.0.113.1", "illegal sale", until=50)
        store.ban_ip("203.0.113.2", "illegal sale", until=0)

        assert run_janitor_pass(store, now=1_000) == 2
        assert set(store.user_bans) == {("lobby", "forever"), ("lobby", "later")}
        assert set(store.ip_bans) == {"203.0.113.2"}

    def test_store_down_is_a_no_op(self) -> None:
        store = MemoryStore()
        store.ban_user("lobby", "expired", "repeated abuse", until=100)
        store.up = False
        assert run_janitor_pass(store, now=1_000) == 0
        store.up = True
        assert ("lobby", "expired") in store.user_bans

    def test_failed_purge_is_contained(self) -> None:
        store = MemoryStore()
        store.fail.add("purge_expired_bans")
        assert run_janitor_pass(store, now=1_000) == 0
