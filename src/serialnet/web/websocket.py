"""
Socket.IO transport for the serial protocol.

Every protocol message travels as one JSON text frame in a ``frame`` event
on the protocol namespace. Handlers for one client run sequentially on that
client's thread (``async_handlers=False``); different clients run
concurrently.
"""

import logging

from flask import request
from flask_socketio import SocketIO

from serialnet.core.config import FRAME_EVENT, PROTOCOL_NAMESPACE
from serialnet.server.lifecycle import ConnectionHub

logger = logging.getLogger(__name__)


def init_socketio(
    app, hub: ConnectionHub, namespace: str = PROTOCOL_NAMESPACE, **kwargs
) -> SocketIO:
    """Initialize SocketIO with Flask app and register protocol handlers."""
    kwargs.setdefault("async_mode", "threading")
    kwargs.setdefault("async_handlers", False)
    socketio = SocketIO(app, **kwargs)
    register_handlers(socketio, hub, namespace)
    return socketio


def register_handlers(sio: SocketIO, hub: ConnectionHub, namespace: str) -> None:
    """Register SocketIO event handlers."""

    @sio.on("connect", namespace=namespace)
    def handle_connect(auth=None):
        """Handle new connection: allocate its session registry."""
        sid = request.sid
        address = request.remote_addr or "unknown"

        def send(frame: str) -> None:
            sio.emit(FRAME_EVENT, frame, to=sid, namespace=namespace)

        hub.connect(sid, send, address)

    @sio.on(FRAME_EVENT, namespace=namespace)
    def handle_frame(data):
        """Handle one protocol frame from the client."""
        hub.dispatch(request.sid, data)

    @sio.on("disconnect", namespace=namespace)
    def handle_disconnect(reason=None):
        """Handle disconnection: close every port the client left open."""
        hub.disconnect(request.sid, str(reason) if reason is not None else None)

    logger.debug(f"Protocol handlers registered on {namespace}")
