"""Socket.IO handlers: connection lifecycle (connect gate + disconnect)."""

from flask import request
from flask_socketio import ConnectionRefusedError


def register(socketio, controller):
    """Register Socket.IO event handlers for this module."""

    @socketio.on("connect")
    def handle_connect(auth=None):
        presented = auth.get("key") if isinstance(auth, dict) else None
        if presented is None:
            presented = request.args.get("key")

        refusal = controller.admit_connection(
            request.sid,
            presented,
            request.headers.get("X-Forwarded-For"),
            request.remote_addr,
        )
        if refusal:
            # "forbidden" is not retryable: the client must re-authenticate.
            raise ConnectionRefusedError(refusal, {"fatal": True, "reauth": refusal == "forbidden"})

    @socketio.on("disconnect")
    def handle_disconnect(*args, **kwargs):
        # Socket.IO may pass a reason depending on version.
        controller.disconnect(request.sid)
