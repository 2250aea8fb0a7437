"""
Request/response correlation for the serialnet client.

Every request gets an id from a per-connection counter and a pending entry
registered before the frame goes out. The matching response resolves the
request's future; error responses resolve it too, since they are valid
answers. Futures are rejected only for transport-level failures: a send
error, a malformed inbound frame, a lost connection, or an expired timeout.

A malformed frame rejects every pending request, not just one: once the
stream carries garbage there is no telling which response was lost.
"""

import dataclasses
import itertools
import logging
import threading
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import Optional

from serialnet.client.transport import Transport
from serialnet.core.errors import (
    ConnectionClosedError,
    MalformedMessageError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)
from serialnet.core.messages import (
    Request,
    Response,
    decode_server_message,
    encode_message,
)
from serialnet.support.events import EventSource

logger = logging.getLogger(__name__)


def resolve(future: Future, value) -> bool:
    """Set a future's result unless it is already settled or cancelled."""
    try:
        future.set_result(value)
    except InvalidStateError:
        return False
    return True


def reject(future: Future, error: BaseException) -> bool:
    """Set a future's exception unless it is already settled or cancelled."""
    try:
        future.set_exception(error)
    except InvalidStateError:
        return False
    return True


@dataclass
class PendingRequest:
    """A request waiting for its response."""

    request_id: str
    request: Request
    future: Future
    timer: Optional[threading.Timer] = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class RequestCorrelator:
    """Matches responses to requests over one client connection."""

    def __init__(self, transport: Transport, request_timeout: Optional[float] = None):
        """
        Initialize correlator.

        Args:
            transport: Connected transport
            request_timeout: Seconds before a request fails with
                RequestTimeoutError. None (default) waits forever.
        """
        self.transport = transport
        self.request_timeout = request_timeout
        self.pushes = EventSource()
        self.errors = EventSource()
        self.disconnected = EventSource()
        self._ids = itertools.count(1)
        self._pending: dict[str, PendingRequest] = {}
        self._lock = threading.Lock()
        self._closed = False

        transport.on_frame += self.receive
        transport.on_disconnect += self.connection_lost

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def request(self, request: Request) -> "Future[Response]":
        """
        Send a request and return a future for its response.

        The future resolves with whatever Response the server sends,
        including ErrorResponse. It never raises synchronously.
        """
        future: Future = Future()
        if self._closed:
            reject(future, ConnectionClosedError("Connection is closed"))
            return future

        with self._lock:
            request_id = str(next(self._ids))
            request = dataclasses.replace(request, request_id=request_id)
            pending = PendingRequest(request_id, request, future)
            self._pending[request_id] = pending

        if self.request_timeout is not None:
            pending.timer = threading.Timer(
                self.request_timeout, self._expire, args=(request_id,)
            )
            pending.timer.daemon = True
            pending.timer.start()

        logger.debug(f"Sending request {request_id}: {request.command.value}")
        try:
            self.transport.send(encode_message(request))
        except Exception as e:
            logger.error(f"Error sending request {request_id}: {e}")
            error = e if isinstance(e, TransportError) else TransportError(str(e))
            self._fail(request_id, error)

        return future

    def receive(self, frame) -> None:
        """Handle one inbound frame: resolve a request or fire a push."""
        try:
            message = decode_server_message(frame)
        except MalformedMessageError as e:
            logger.error(f"Malformed frame from server, failing all requests: {e}")
            self.fail_all(e)
            self.errors.fire(e)
            return
        except ProtocolError as e:
            request_id = getattr(e, "request_id", None)
            if request_id is not None and self._fail(str(request_id), e):
                return
            logger.warning(f"Invalid message from server: {e}")
            self.errors.fire(e)
            return

        if isinstance(message, Response):
            pending = self._pop(str(message.request_id))
            if pending is None:
                logger.debug(f"Dropping response for unknown request {message.request_id}")
                return
            resolve(pending.future, message)
        else:
            self.pushes.fire(message)

    def connection_lost(self, reason=None) -> None:
        """
        Fail every pending request, then fire ``disconnected``.

        Later requests fail immediately.
        """
        self._closed = True
        self.fail_all(ConnectionClosedError(f"Connection closed: {reason}"))
        self.disconnected.fire(reason)

    def fail_all(self, error: BaseException) -> int:
        """Reject every pending request with ``error``."""
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for entry in pending:
            entry.cancel_timer()
            reject(entry.future, error)
        return len(pending)

    def _pop(self, request_id: str) -> Optional[PendingRequest]:
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is not None:
            pending.cancel_timer()
        return pending

    def _fail(self, request_id: str, error: BaseException) -> bool:
        pending = self._pop(request_id)
        if pending is None:
            return False
        reject(pending.future, error)
        return True

    def _expire(self, request_id: str) -> None:
        if self._fail(
            request_id,
            RequestTimeoutError(f"No response to request {request_id} after {self.request_timeout}s"),
        ):
            logger.warning(f"Request {request_id} timed out")
