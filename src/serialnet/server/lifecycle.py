"""
Connection lifecycle for the serialnet server.

Each client connection gets a ConnectionLifecycle holding its own session
registry. Inbound frames are decoded and answered here; push messages from
the gateway are forwarded through the same send function; on disconnect
every session of the connection is closed.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional, Union

from serialnet.core.errors import InvalidMessageError, MalformedMessageError
from serialnet.core.messages import (
    DataPush,
    ErrorPush,
    ErrorResponse,
    PushMessage,
    Response,
    decode_request,
    encode_message,
)
from serialnet.serial.device import DeviceDriver
from serialnet.server.gateway import DeviceGateway
from serialnet.server.registry import SessionRegistry

logger = logging.getLogger(__name__)

FrameSender = Callable[[str], None]


class ConnectionLifecycle:
    """State and message handling for one client connection."""

    def __init__(
        self,
        connection_id: str,
        gateway: DeviceGateway,
        send: FrameSender,
        address: str = "unknown",
    ):
        """
        Initialize connection.

        Args:
            connection_id: Transport session id
            gateway: Shared device gateway
            send: Sends one text frame to the client
            address: Remote address for log messages
        """
        self.connection_id = connection_id
        self.address = address
        self.connected_at = datetime.now()
        self._send = send
        self._closed = False
        self.registry = SessionRegistry(gateway, self.push, client=self.client_label)

    @property
    def client_label(self) -> str:
        return f"{self.address} {self.connection_id[:8]}"

    @property
    def is_closed(self) -> bool:
        return self._closed

    def send_message(self, message: Union[Response, PushMessage]) -> bool:
        """Send a message, logging instead of raising on failure."""
        try:
            self._send(encode_message(message))
        except Exception as e:
            logger.error(f"[{self.client_label}] Error sending {message.command.value}: {e}")
            return False
        return True

    def push(self, message: PushMessage) -> None:
        """Forward a push message unless the connection is gone."""
        if self._closed:
            logger.debug(f"[{self.client_label}] Dropping push after disconnect: {message!r}")
            return
        if not self.send_message(message) and isinstance(message, DataPush):
            self.send_message(ErrorPush(message="Error sending received data"))

    def on_message(self, frame) -> None:
        """Decode and answer one inbound frame."""
        try:
            request = decode_request(frame)
        except MalformedMessageError as e:
            logger.warning(f"[{self.client_label}] Malformed frame: {e}")
            self.send_message(ErrorPush(message=str(e)))
            return
        except InvalidMessageError as e:
            logger.warning(f"[{self.client_label}] Invalid request: {e}")
            if e.request_id is not None:
                self.send_message(ErrorResponse(str(e), e.request_id))
            else:
                self.send_message(ErrorPush(message=str(e)))
            return

        logger.debug(f"[{self.client_label}] Request {request.request_id}: {request.command.value}")
        try:
            response = self.registry.handle(request)
        except Exception:
            logger.exception(f"[{self.client_label}] Uncaught request error")
            response = ErrorResponse("Internal server error", request.request_id)

        self.send_message(response)

    def on_disconnect(self, reason: Optional[str] = None) -> int:
        """
        Tear down the connection, closing every session it still holds.

        Returns:
            Number of sessions a close was attempted on
        """
        if self._closed:
            return 0
        self._closed = True
        count = self.registry.close_all()
        logger.info(f"[{self.client_label}] Client disconnected ({reason}), closed {count} port(s)")
        return count


class ConnectionHub:
    """Tracks the live connections of a server sharing one device gateway."""

    def __init__(self, driver: DeviceDriver):
        self.gateway = DeviceGateway(driver)
        self._connections: dict[str, ConnectionLifecycle] = {}
        self._lock = threading.Lock()

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def get(self, connection_id: str) -> Optional[ConnectionLifecycle]:
        with self._lock:
            return self._connections.get(connection_id)

    def connect(
        self, connection_id: str, send: FrameSender, address: str = "unknown"
    ) -> ConnectionLifecycle:
        """Register a new connection with a fresh session registry."""
        connection = ConnectionLifecycle(connection_id, self.gateway, send, address)
        with self._lock:
            previous = self._connections.pop(connection_id, None)
            self._connections[connection_id] = connection
        if previous is not None:
            previous.on_disconnect("replaced")
        logger.info(f"[{connection.client_label}] Client connected")
        return connection

    def dispatch(self, connection_id: str, frame) -> bool:
        """
        Hand a frame to its connection.

        Returns:
            False if the connection is unknown
        """
        connection = self.get(connection_id)
        if connection is None:
            logger.warning(f"Frame for unknown connection {connection_id}")
            return False
        connection.on_message(frame)
        return True

    def disconnect(self, connection_id: str, reason: Optional[str] = None) -> int:
        """Remove a connection and close its sessions."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is None:
            return 0
        return connection.on_disconnect(reason)

    def shutdown(self) -> None:
        """Disconnect every connection."""
        with self._lock:
            connection_ids = list(self._connections)
        for connection_id in connection_ids:
            self.disconnect(connection_id, "server shutdown")

    def get_connections_info(self) -> list[dict]:
        """Get information about live connections."""
        with self._lock:
            connections = list(self._connections.values())
        return [
            {
                "connection_id": c.connection_id,
                "address": c.address,
                "connected_at": c.connected_at.isoformat(),
                "sessions": c.registry.get_sessions_info(),
            }
            for c in connections
        ]
