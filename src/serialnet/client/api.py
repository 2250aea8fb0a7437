"""Client API used by the CLI and by applications."""

import logging
from typing import Optional

from serialnet.client.correlator import RequestCorrelator
from serialnet.client.facade import RemoteSerialPort, response_error
from serialnet.client.transport import SocketIOTransport, Transport
from serialnet.core.config import ClientConfig
from serialnet.core.messages import DeviceDescriptor, EnumerateRequest, EnumerateResponse

logger = logging.getLogger(__name__)


class SerialNetClient:
    def __init__(self, transport: Transport, request_timeout: Optional[float] = None) -> None:
        self.transport = transport
        self.correlator = RequestCorrelator(transport, request_timeout=request_timeout)
        self.correlator.errors += self._log_error
        self.correlator.pushes += self._log_connection_error

    def __enter__(self) -> "SerialNetClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def list_ports(self, timeout: Optional[float] = None) -> list[DeviceDescriptor]:
        response = self.correlator.request(EnumerateRequest()).result(timeout)
        if isinstance(response, EnumerateResponse):
            return list(response.devices)
        raise response_error(response)

    def open_port(
        self,
        path: str,
        baud_rate: int = 115200,
        auto_open: bool = True,
        timeout: Optional[float] = None,
    ) -> RemoteSerialPort:
        port = RemoteSerialPort(self.correlator, path, baud_rate)
        if auto_open:
            port.open().result(timeout)
        return port

    def close(self) -> None:
        self.transport.close()

    def _log_error(self, error: Exception) -> None:
        logger.error(f"Protocol error: {error}")

    def _log_connection_error(self, message) -> None:
        # port-less error pushes are about the connection, not a port
        if getattr(message, "port", None) is None:
            logger.error(f"Server error: {getattr(message, 'message', message)}")


def create_client(url: Optional[str] = None, config: Optional[ClientConfig] = None) -> SerialNetClient:
    """
    Connect to a serialnet server.

    Raises:
        TransportError: If the connection fails
    """
    config = config or ClientConfig()
    transport = SocketIOTransport(
        url or config.url,
        namespace=config.namespace,
        connect_timeout=config.connect_timeout,
    )
    transport.connect()
    return SerialNetClient(transport, request_timeout=config.request_timeout)
