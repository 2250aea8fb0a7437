"""
Client side of serialnet.

Connect with ``create_client(url)``, list remote devices with
``list_ports()`` and open one with ``open_port(path, baud_rate)``.
"""

from serialnet.client.api import SerialNetClient, create_client
from serialnet.client.correlator import RequestCorrelator
from serialnet.client.facade import RemoteSerialPort
from serialnet.client.transport import SocketIOTransport, Transport

__all__ = [
    "create_client",
    "SerialNetClient",
    "RequestCorrelator",
    "RemoteSerialPort",
    "Transport",
    "SocketIOTransport",
]
