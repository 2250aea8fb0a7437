"""
Remote serial port.

Presents one device session on a serialnet server as a local byte-stream
endpoint: ``open``, ``write`` and ``close`` return futures, incoming data is
available through ``read`` and the ``on_data`` event, and ``on_error`` /
``on_close`` report what the server pushes for this port. Losing the
connection closes the port too.
"""

import logging
import queue
import threading
from concurrent.futures import Future
from typing import Callable, Optional, Union

from serialnet.client.correlator import RequestCorrelator, reject, resolve
from serialnet.core.errors import PortNotOpenError, RemoteError, UnexpectedResponseError
from serialnet.core.messages import (
    CloseRequest,
    ClosedPush,
    DataPush,
    ErrorPush,
    ErrorResponse,
    OpenRequest,
    PushMessage,
    Response,
    SuccessResponse,
    WriteRequest,
)
from serialnet.support.events import EventSource

logger = logging.getLogger(__name__)

WriteCallback = Callable[[Optional[BaseException], int], None]


def to_bytes(data: Union[str, bytes, bytearray, memoryview, list], encoding: str = "utf-8") -> bytes:
    """
    Normalize write input to bytes.

    Raises:
        TypeError: For unsupported input types
        ValueError: For integers outside 0..255
    """
    if isinstance(data, str):
        return data.encode(encoding)
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, (list, tuple)):
        return bytes(data)
    raise TypeError(f"Unsupported data type: {type(data).__name__}")


def response_error(response: Response) -> Exception:
    """Exception for a response that is not a plain success."""
    if isinstance(response, ErrorResponse):
        return RemoteError(response.message)
    return UnexpectedResponseError(f"Unexpected response from server: {response.command.value}")


class RemoteSerialPort:
    """A serial port on a remote serialnet server."""

    def __init__(self, correlator: RequestCorrelator, path: str, baud_rate: int):
        self.correlator = correlator
        self.path = path
        self.baud_rate = baud_rate
        self.is_open = False

        self.on_data = EventSource()
        self.on_error = EventSource()
        self.on_close = EventSource()

        self._incoming: "queue.Queue[bytes]" = queue.Queue()
        self._lock = threading.Lock()
        self._subscribed = False
        self._close_notified = False

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<RemoteSerialPort {self.path} @ {self.baud_rate} ({state})>"

    def __enter__(self) -> "RemoteSerialPort":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_open:
            self.close().result()

    def open(self) -> "Future[None]":
        """Open the port on the server."""
        result: Future = Future()

        # data may be pushed before the open response arrives
        self._subscribe()

        def opened(future: Future) -> None:
            try:
                response = future.result()
            except Exception as e:
                self._unsubscribe()
                reject(result, e)
                return
            if isinstance(response, SuccessResponse):
                with self._lock:
                    self.is_open = True
                    self._close_notified = False
                logger.debug(f"Opened remote port {self.path}")
                resolve(result, None)
            else:
                self._unsubscribe()
                reject(result, response_error(response))

        self.correlator.request(OpenRequest(self.path, self.baud_rate)).add_done_callback(opened)
        return result

    def write(
        self,
        data: Union[str, bytes, bytearray, memoryview, list],
        encoding: str = "utf-8",
        callback: Optional[WriteCallback] = None,
    ) -> "Future[int]":
        """
        Write data to the port.

        The future resolves with the number of bytes written. Failures,
        including unsupported input, reject the future; nothing is raised
        here. ``callback(error, bytes_written)`` is called when done.
        """
        result: Future = Future()
        if callback is not None:
            result.add_done_callback(_write_callback(callback))

        try:
            payload = to_bytes(data, encoding)
        except (TypeError, ValueError) as e:
            reject(result, e)
            return result

        if not self.is_open:
            reject(result, PortNotOpenError(self.path))
            return result

        def written(future: Future) -> None:
            try:
                response = future.result()
            except Exception as e:
                reject(result, e)
                return
            if isinstance(response, SuccessResponse):
                resolve(result, len(payload))
            else:
                reject(result, response_error(response))

        self.correlator.request(WriteRequest(self.path, payload)).add_done_callback(written)
        return result

    def close(self) -> "Future[None]":
        """
        Close the port on the server.

        The port is marked closed and ``on_close`` fires whatever the
        server answers; an error answer also rejects the returned future.
        """
        result: Future = Future()

        def closed(future: Future) -> None:
            try:
                response = future.result()
                error = None if isinstance(response, SuccessResponse) else response_error(response)
            except Exception as e:
                error = e
            self._mark_closed()
            if error is None:
                resolve(result, None)
            else:
                reject(result, error)

        self.correlator.request(CloseRequest(self.path)).add_done_callback(closed)
        return result

    def read(self, timeout: Optional[float] = None) -> bytes:
        """
        Return the next chunk of received data.

        Returns b"" on timeout, or once the port is closed and drained.
        """
        if not self.is_open and self._incoming.empty():
            return b""
        try:
            return self._incoming.get(timeout=timeout)
        except queue.Empty:
            return b""

    def _subscribe(self) -> None:
        with self._lock:
            if self._subscribed:
                return
            self._subscribed = True
        self.correlator.pushes += self._handle_push
        self.correlator.disconnected += self._handle_disconnect

    def _unsubscribe(self) -> None:
        with self._lock:
            if not self._subscribed:
                return
            self._subscribed = False
        self.correlator.pushes -= self._handle_push
        self.correlator.disconnected -= self._handle_disconnect

    def _mark_closed(self) -> None:
        self._unsubscribe()
        with self._lock:
            self.is_open = False
            notify = not self._close_notified
            self._close_notified = True
        if notify:
            # wakes a blocked read()
            self._incoming.put(b"")
            self.on_close.fire()

    def _handle_push(self, message: PushMessage) -> None:
        if message.port != self.path:
            return
        if isinstance(message, DataPush):
            self._incoming.put(message.data)
            self.on_data.fire(message.data)
        elif isinstance(message, ErrorPush):
            logger.warning(f"Remote port {self.path} error: {message.message}")
            self.on_error.fire(RemoteError(message.message))
        elif isinstance(message, ClosedPush):
            logger.info(f"Remote port {self.path} closed by server")
            self._mark_closed()

    def _handle_disconnect(self, reason=None) -> None:
        logger.info(f"Remote port {self.path} closed: connection lost ({reason})")
        self._mark_closed()


def _write_callback(callback: WriteCallback) -> Callable[[Future], None]:
    def done(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        callback(error, 0 if error is not None else future.result())

    return done
