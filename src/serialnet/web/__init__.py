"""
Network server for serialnet.

Socket.IO endpoint carrying the serial protocol plus a small REST status API.
"""

from serialnet.web.app import create_app

__all__ = ["create_app"]
