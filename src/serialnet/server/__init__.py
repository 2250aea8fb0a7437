"""
Server side of serialnet.

The device gateway, per-connection session registries and the connection
lifecycle that ties them to the transport.
"""

from serialnet.server.gateway import DeviceGateway
from serialnet.server.lifecycle import ConnectionHub, ConnectionLifecycle
from serialnet.server.registry import Session, SessionRegistry, SessionStatus

__all__ = [
    "DeviceGateway",
    "SessionRegistry",
    "Session",
    "SessionStatus",
    "ConnectionLifecycle",
    "ConnectionHub",
]
