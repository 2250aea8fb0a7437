"""
Client transports.

A transport delivers text frames to and from the server and reports
disconnection. Inbound frames are fired on ``on_frame`` in the transport's
receive thread, in arrival order.
"""

import logging
from abc import ABC, abstractmethod

import socketio

from serialnet.core.config import FRAME_EVENT, PROTOCOL_NAMESPACE
from serialnet.core.errors import TransportError
from serialnet.support.events import EventSource

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Abstract base class for client transports."""

    def __init__(self):
        self.on_frame = EventSource()
        self.on_disconnect = EventSource()

    @abstractmethod
    def send(self, frame: str) -> None:
        """
        Send one text frame.

        Raises:
            TransportError: If the frame could not be sent
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection."""
        pass


class SocketIOTransport(Transport):
    """Transport over a python-socketio client connection."""

    def __init__(
        self,
        url: str,
        namespace: str = PROTOCOL_NAMESPACE,
        connect_timeout: float = 5.0,
        client: socketio.Client = None,
    ):
        """
        Initialize transport.

        Args:
            url: Server URL, e.g. http://host:8080
            namespace: Protocol namespace on the server
            connect_timeout: Seconds to wait for the namespace connection
            client: Optional pre-built socketio.Client
        """
        super().__init__()
        self.url = url
        self.namespace = namespace
        self.connect_timeout = connect_timeout
        self.sio = client or socketio.Client(reconnection=False)
        self.sio.on(FRAME_EVENT, self._handle_frame, namespace=namespace)
        self.sio.on("disconnect", self._handle_disconnect, namespace=namespace)

    @property
    def connected(self) -> bool:
        return self.sio.connected

    def connect(self) -> None:
        """
        Connect to the server.

        Raises:
            TransportError: If the connection fails
        """
        logger.info(f"Connecting to {self.url}{self.namespace}")
        try:
            self.sio.connect(
                self.url,
                namespaces=[self.namespace],
                wait_timeout=self.connect_timeout,
            )
        except socketio.exceptions.ConnectionError as e:
            raise TransportError(f"Failed to connect to {self.url}: {e}") from e

    def send(self, frame: str) -> None:
        try:
            self.sio.emit(FRAME_EVENT, frame, namespace=self.namespace)
        except Exception as e:
            raise TransportError(f"Error sending frame: {e}") from e

    def close(self) -> None:
        if self.sio.connected:
            self.sio.disconnect()

    def _handle_frame(self, data) -> None:
        self.on_frame.fire(data)

    def _handle_disconnect(self, reason=None) -> None:
        logger.info(f"Disconnected from {self.url}: {reason}")
        self.on_disconnect.fire(reason)
