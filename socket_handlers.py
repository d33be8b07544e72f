#!/usr/bin/env python3
"""
socket_handlers.py

Socket.IO event handlers for GuardChat. The handlers are split by feature
(see realtime/*.py); each module only parses payloads and delegates to the
shared SessionController.
"""


def register_socketio_handlers(socketio, controller):
    """Registers all Socket.IO event handlers against one controller."""
    from realtime import connection, rooms
    connection.register(socketio, controller)
    rooms.register(socketio, controller)
