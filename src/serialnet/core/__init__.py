"""
Core components for serialnet.

Provides configuration, wire messages, and the error hierarchy.
"""

from serialnet.core.config import Config, load_config
from serialnet.core.errors import (
    ConnectionClosedError,
    DeviceError,
    MalformedMessageError,
    PortAlreadyOpenError,
    PortNotOpenError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    SerialNetError,
    TransportError,
    UnexpectedResponseError,
)
from serialnet.core.messages import (
    DeviceDescriptor,
    decode_request,
    decode_server_message,
    encode_message,
)

__all__ = [
    "Config",
    "load_config",
    "SerialNetError",
    "ProtocolError",
    "MalformedMessageError",
    "UnexpectedResponseError",
    "DeviceError",
    "PortNotOpenError",
    "PortAlreadyOpenError",
    "TransportError",
    "ConnectionClosedError",
    "RequestTimeoutError",
    "RemoteError",
    "DeviceDescriptor",
    "encode_message",
    "decode_request",
    "decode_server_message",
]
