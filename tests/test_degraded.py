"""Relay behaviour while the database is down or individual calls fail."""

from __future__ import annotations

from tests.fakes import by_event


class TestStoreDown:
    def test_connect_reports_db_down(self, store, connect) -> None:
        store.up = False
        assert by_event(connect())["db_status"] == [{"ok": False}]

    def test_join_and_chat_keep_working(self, store, join, say) -> None:
        store.up = False
        a = join("u1", name="Ayşe")
        b = join("u2", name="Bora", ip="198.51.100.8")
        a.get_received()

        say(a, "hello everyone")
        assert [m["text"] for m in by_event(b)["chat"]] == ["hello everyone"]
        assert store.messages == []

    def test_invite_tokens_are_not_checked(self, store, join) -> None:
        join("owner", room="vip", inviteToken="s3cret")
        store.up = False
        assert join("guest", room="vip", inviteToken="wrong", ip="198.51.100.9").is_connected()

    def test_presence_falls_back_to_live_sessions(self, store, connect, join) -> None:
        store.up = False
        join("u1", ip="198.51.100.10")
        late = connect(ip="198.51.100.11")
        late.emit("join", {"userId": "u2", "room": "lobby", "ageOk": True})
        members = by_event(late)["presence_full"][0]["members"]
        assert {m["userId"] for m in members} == {"u1", "u2"}
        assert all(m["isOnline"] for m in members)

    def test_abuse_is_dropped_without_escalation(self, store, join, say) -> None:
        store.up = False
        a = join("u1")
        for _ in range(3):
            say(a, "siktir git")
        assert by_event(a)["blocked"] == [{"reason": "message blocked", "action": "drop"}] * 3
        assert a.is_connected()

    def test_illegal_sale_still_disconnects(self, store, join, say, connect) -> None:
        store.up = False
        seller = join("u1", ip="203.0.113.40")
        say(seller, "kokain satış")
        assert by_event(seller)["blocked"] == [{"reason": "banned", "action": "ban"}]
        assert not seller.is_connected()

        store.up = True
        assert store.ip_bans == {}
        assert connect(ip="203.0.113.40").is_connected()

    def test_report_fails_softly(self, store, join) -> None:
        a = join("u1")
        store.up = False
        assert a.emit("report", {"targetUserId": "u2"}, callback=True) == {"success": False}

    def test_recovery(self, store, connect) -> None:
        store.up = False
        assert by_event(connect())["db_status"] == [{"ok": False}]
        store.up = True
        assert by_event(connect(ip="198.51.100.99"))["db_status"] == [{"ok": True}]


class TestSingleCallFailures:
    def test_failed_strike_increment_drops_the_message(self, store, join, say) -> None:
        store.fail.add("add_strike")
        a = join("u1")
        say(a, "siktir git")
        assert by_event(a)["blocked"] == [{"reason": "message blocked", "action": "drop"}]
        assert a.is_connected()

    def test_failed_message_insert_still_broadcasts(self, store, join, say) -> None:
        store.fail.add("add_message")
        a = join("u1")
        say(a, "hello everyone")
        assert [m["text"] for m in by_event(a)["chat"]] == ["hello everyone"]

    def test_failed_ban_lookup_admits_the_join(self, store, join) -> None:
        store.ban_user("lobby", "u1", "repeated abuse")
        store.fail.add("active_user_ban")
        assert join("u1").is_connected()

    def test_failed_room_lookup_admits_the_join(self, store, join) -> None:
        store.fail.add("ensure_room")
        assert join("u1", room="vip", inviteToken="x").is_connected()

    def test_failed_presence_listing_uses_live_sessions(self, store, connect) -> None:
        store.fail.add("list_presence")
        client = connect()
        client.emit("join", {"userId": "u1", "room": "lobby", "ageOk": True})
        members = by_event(client)["presence_full"][0]["members"]
        assert [m["userId"] for m in members] == ["u1"]
