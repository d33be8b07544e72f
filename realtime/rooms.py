"""Socket.IO handlers: rooms (join, chat, typing, report)."""

import logging

from flask import request

from realtime.events import ChatEvent, InvalidEvent, JoinEvent, ReportEvent, TypingEvent


def register(socketio, controller):
    """Register Socket.IO event handlers for this module."""

    @socketio.on("join")
    def handle_join(data=None):
        sid = request.sid
        try:
            event = JoinEvent.from_payload(data)
        except InvalidEvent as e:
            controller.refuse_malformed(sid, str(e))
            return {"success": False, "error": "invalid_join"}

        session = controller.join(sid, event)
        if session is None:
            return {"success": False}
        return {"success": True, "room": session.room}

    @socketio.on("chat")
    def handle_chat(data=None):
        try:
            event = ChatEvent.from_payload(data)
        except InvalidEvent as e:
            logging.debug("[chat] dropped malformed payload from %s: %s", request.sid, e)
            return
        controller.message(request.sid, event)

    @socketio.on("typing")
    def handle_typing(data=None):
        try:
            event = TypingEvent.from_payload(data)
        except InvalidEvent:
            return
        controller.typing(request.sid, event)

    @socketio.on("report")
    def handle_report(data=None):
        try:
            event = ReportEvent.from_payload(data)
        except InvalidEvent as e:
            return {"success": False, "error": str(e)}
        return {"success": controller.report(request.sid, event)}
