"""Thin wrapper over the Flask-SocketIO server used by the session controller."""

from flask_socketio import SocketIO


class SocketIOTransport:
    def __init__(self, socketio: SocketIO, namespace: str = "/"):
        self.socketio = socketio
        self.namespace = namespace

    def send(self, sid: str, event: str, payload) -> None:
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def broadcast(self, room: str, event: str, payload, skip_sid: str | None = None) -> None:
        self.socketio.emit(event, payload, to=room, skip_sid=skip_sid, namespace=self.namespace)

    def enter(self, sid: str, room: str) -> None:
        self.socketio.server.enter_room(sid, room, namespace=self.namespace)

    def leave(self, sid: str, room: str) -> None:
        self.socketio.server.leave_room(sid, room, namespace=self.namespace)

    def close(self, sid: str) -> None:
        self.socketio.server.disconnect(sid, namespace=self.namespace)
