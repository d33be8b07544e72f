from __future__ import annotations

import os

# Keep the test run on plain threads; eventlet monkey patching is for servers.
os.environ["GUARDCHAT_SOCKETIO_ASYNC"] = "threading"
os.environ.pop("REDIS_URL", None)

import pytest

from config import get_default_settings
from server_init import create_app
from tests.fakes import FakeClock, MemoryStore

CLIENT_IP = "198.51.100.7"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(request) -> dict:
    """Default settings; override per test with @pytest.mark.settings(key=value)."""
    s = get_default_settings()
    s["secret_key"] = "test-secret"
    s["janitor_enabled"] = False
    marker = request.node.get_closest_marker("settings")
    if marker is not None:
        s.update(marker.kwargs)
    return s


@pytest.fixture
def app_and_socketio(settings, store, clock):
    return create_app(settings, store=store, clock=clock)


@pytest.fixture
def app(app_and_socketio):
    return app_and_socketio[0]


@pytest.fixture
def socketio(app_and_socketio):
    return app_and_socketio[1]


@pytest.fixture
def connect(app, socketio):
    """Factory for Socket.IO test clients; disconnects survivors on teardown."""
    clients = []

    def _connect(ip: str = CLIENT_IP, **kwargs):
        headers = dict(kwargs.pop("headers", None) or {})
        headers.setdefault("X-Forwarded-For", ip)
        client = socketio.test_client(app, headers=headers, **kwargs)
        clients.append(client)
        return client

    yield _connect

    for c in clients:
        if c.is_connected():
            c.disconnect()


@pytest.fixture
def join(connect):
    """Connect and join a room in one step; returns the client with its queue drained."""

    def _join(user_id: str, room: str = "lobby", name: str | None = None, ip: str = CLIENT_IP, **extra):
        client = connect(ip=ip)
        payload = {"userId": user_id, "name": name or user_id, "room": room, "ageOk": True}
        payload.update(extra)
        ack = client.emit("join", payload, callback=True)
        assert ack == {"success": True, "room": room}
        client.get_received()
        return client

    return _join


@pytest.fixture
def say(clock):
    """Send a chat message after moving the clock past the rate-limit window."""

    def _say(client, text: str, room: str = "lobby"):
        clock.advance(1000)
        client.emit("chat", {"room": room, "text": text})

    return _say
