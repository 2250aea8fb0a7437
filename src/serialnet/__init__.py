"""
Serial ports over the network (serialnet).

Exposes local serial devices to remote clients over a Socket.IO connection
and provides a client that presents a remote device as a local byte stream.
"""

__version__ = "0.1.0"
