"""
Per-connection session registry.

Maps device names to the sessions a single connection has open and answers
that connection's requests. A device name maps to at most one session per
connection.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from serialnet.core.errors import (
    DeviceError,
    PortAlreadyOpenError,
    PortNotOpenError,
    UnknownCommandError,
)
from serialnet.core.messages import (
    CloseRequest,
    EnumerateRequest,
    EnumerateResponse,
    ErrorResponse,
    OpenRequest,
    Request,
    Response,
    SuccessResponse,
    WriteRequest,
)
from serialnet.serial.device import DeviceHandle
from serialnet.server.gateway import DeviceGateway, PushSink

logger = logging.getLogger(__name__)


class SessionStatus(Enum):
    """Session status values."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass
class Session:
    """A device opened by one connection."""

    port: str
    handle: DeviceHandle
    baud_rate: int
    status: SessionStatus = SessionStatus.OPEN
    opened_at: datetime = field(default_factory=datetime.now)
    unsubscribe: Optional[Callable[[], None]] = field(default=None, repr=False)

    def detach(self) -> None:
        """Stop receiving device events and mark closed."""
        if self.unsubscribe is not None:
            self.unsubscribe()
            self.unsubscribe = None
        self.status = SessionStatus.CLOSED


class SessionRegistry:
    """
    Open sessions of one connection.

    ``handle`` runs on the connection's handler thread. Device-initiated
    closes arrive on reader threads, hence the lock around the mapping.
    """

    def __init__(self, gateway: DeviceGateway, push: PushSink, client: str = "unknown"):
        """
        Initialize registry.

        Args:
            gateway: Shared device gateway
            push: Sends push messages to this connection
            client: Client description used in log messages
        """
        self.gateway = gateway
        self.push = push
        self.client = client
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, port: str) -> bool:
        with self._lock:
            return port in self._sessions

    @property
    def ports(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def get(self, port: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(port)

    def handle(self, request: Request) -> Response:
        """
        Execute a request and build its response.

        Device failures become error responses; only programming errors
        propagate.
        """
        if isinstance(request, EnumerateRequest):
            return self._enumerate(request)
        elif isinstance(request, OpenRequest):
            return self._open(request)
        elif isinstance(request, WriteRequest):
            return self._write(request)
        elif isinstance(request, CloseRequest):
            return self._close(request)
        else:
            raise UnknownCommandError(
                f"Unsupported request: {type(request).__name__}",
                getattr(request, "request_id", None),
            )

    def _enumerate(self, request: EnumerateRequest) -> Response:
        try:
            devices = self.gateway.enumerate()
        except DeviceError as e:
            logger.warning(f"[{self.client}] Error listing devices: {e}")
            return ErrorResponse(f"Error listing devices: {e}", request.request_id)
        return EnumerateResponse(request.request_id, tuple(devices))

    def _open(self, request: OpenRequest) -> Response:
        port = request.port
        if port in self:
            error = PortAlreadyOpenError(port)
            logger.warning(f"[{self.client}] {error}")
            return ErrorResponse(str(error), request.request_id)

        try:
            handle = self.gateway.open(port, request.baud_rate)
        except DeviceError as e:
            logger.warning(f"[{self.client}] Error opening port {port}: {e}")
            return ErrorResponse(f"Error opening port: {e}", request.request_id)

        session = Session(port=port, handle=handle, baud_rate=request.baud_rate)
        with self._lock:
            self._sessions[port] = session
        session.unsubscribe = self.gateway.subscribe(
            handle,
            port,
            self.push,
            on_closed=lambda reason: self._discard(session),
        )
        handle.start()

        logger.debug(f"[{self.client}] Serialport {port} opened")
        return SuccessResponse(request.request_id)

    def _write(self, request: WriteRequest) -> Response:
        session = self.get(request.port)
        if session is None:
            return ErrorResponse(str(PortNotOpenError(request.port)), request.request_id)

        try:
            self.gateway.write(session.handle, request.data)
        except DeviceError as e:
            logger.warning(f"[{self.client}] Error writing to port {request.port}: {e}")
            return ErrorResponse(f"Error writing to port: {e}", request.request_id)

        return SuccessResponse(request.request_id)

    def _close(self, request: CloseRequest) -> Response:
        with self._lock:
            session = self._sessions.pop(request.port, None)
        if session is None:
            return ErrorResponse(str(PortNotOpenError(request.port)), request.request_id)

        session.detach()
        try:
            self.gateway.close(session.handle)
        except DeviceError as e:
            logger.warning(f"[{self.client}] Error closing port {request.port}: {e}")
            return ErrorResponse(f"Error closing port: {e}", request.request_id)

        logger.debug(f"[{self.client}] Serialport {request.port} closed")
        return SuccessResponse(request.request_id)

    def _discard(self, session: Session) -> None:
        """Drop a session whose device closed on its own."""
        with self._lock:
            if self._sessions.get(session.port) is session:
                del self._sessions[session.port]
        session.detach()

    def close_all(self) -> int:
        """
        Close every open session, best effort.

        Failures are logged and skipped since there is nobody left to
        report them to.

        Returns:
            Number of handles a close was attempted on
        """
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            session.detach()
            try:
                self.gateway.close(session.handle)
            except Exception as e:
                logger.error(f"[{self.client}] Failed to close {session.port}: {e}")

        return len(sessions)

    def get_sessions_info(self) -> list[dict]:
        """Get information about open sessions."""
        with self._lock:
            sessions = list(self._sessions.values())
        return [
            {
                "port": s.port,
                "baud_rate": s.baud_rate,
                "status": s.status.value,
                "opened_at": s.opened_at.isoformat(),
            }
            for s in sessions
        ]
