from __future__ import annotations

from security import client_ip, keys_match, log_audit_event
from tests.fakes import MemoryStore


class TestKeysMatch:
    def test_exact_match_only(self) -> None:
        assert keys_match("s3cret", "s3cret")
        assert not keys_match("s3cret ", "s3cret")
        assert not keys_match("S3CRET", "s3cret")
        assert not keys_match("", "s3cret")

    def test_none_never_matches(self) -> None:
        assert not keys_match(None, "s3cret")
        assert not keys_match("s3cret", None)


class TestClientIp:
    def test_first_forwarded_hop(self) -> None:
        assert client_ip("203.0.113.1, 10.0.0.1", "10.0.0.2") == "203.0.113.1"

    def test_falls_back_to_remote_addr(self) -> None:
        assert client_ip(None, "10.0.0.2") == "10.0.0.2"
        assert client_ip("  ", "10.0.0.2") == "10.0.0.2"

    def test_unknown(self) -> None:
        assert client_ip(None, None) == "unknown"


class TestAuditLog:
    def test_written_when_store_is_up(self) -> None:
        store = MemoryStore()
        assert log_audit_event(store, "system", "ban", "lobby/u1", "reason=illegal sale")
        assert store.audit == [
            {"actor": "system", "action": "ban", "target": "lobby/u1", "details": "reason=illegal sale"}
        ]

    def test_best_effort(self) -> None:
        store = MemoryStore()
        store.up = False
        assert log_audit_event(store, "system", "ban") is False
        store.up = True
        store.fail.add("add_audit_event")
        assert log_audit_event(store, "system", "ban") is False
        assert log_audit_event(None, "system", "ban") is False
