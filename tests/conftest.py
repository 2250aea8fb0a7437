"""Shared fixtures: an in-memory device driver and client transport."""

import json

import pytest

from serialnet.client.transport import Transport
from serialnet.core.errors import DeviceError, TransportError
from serialnet.core.messages import DeviceDescriptor
from serialnet.serial.device import (
    ClosedEvent,
    DataEvent,
    DeviceDriver,
    DeviceHandle,
    ErrorEvent,
)


class FakeHandle(DeviceHandle):
    """Device handle recording writes; tests fire device events by hand."""

    def __init__(self, driver: "FakeDriver", name: str, baud_rate: int):
        super().__init__(name)
        self.driver = driver
        self.baud_rate = baud_rate
        self.written: list[bytes] = []
        self.started = False
        self.closed = False
        self.close_calls = 0
        self.write_error = None
        self.close_error = None

    @property
    def is_open(self) -> bool:
        return not self.closed

    def start(self) -> None:
        self.started = True

    def write(self, data: bytes) -> int:
        if self.closed:
            raise DeviceError(f"Port is closed: {self.name}")
        if self.write_error:
            raise DeviceError(self.write_error)
        self.written.append(bytes(data))
        return len(data)

    def close(self) -> None:
        self.close_calls += 1
        if self.close_error:
            raise DeviceError(self.close_error)
        self.closed = True
        self.driver.held.discard(self.name)

    # --- device side ---

    def receive(self, data: bytes) -> None:
        self.events.fire(DataEvent(data))

    def fail(self, reason: str) -> None:
        self.events.fire(ErrorEvent(reason))

    def unplug(self, reason: str = "device disconnected") -> None:
        self.closed = True
        self.driver.held.discard(self.name)
        self.events.fire(ClosedEvent(reason))


class FakeDriver(DeviceDriver):
    """Driver over a fixed device list; a held device cannot be reopened."""

    def __init__(self, names=("/dev/ttyUSB0", "/dev/ttyUSB1", "/dev/ttyACM0")):
        self.devices = [
            DeviceDescriptor(port=name, manufacturer="FTDI", vid="0403", pid="6001")
            for name in names
        ]
        self.handles: dict[str, list[FakeHandle]] = {}
        self.held: set[str] = set()
        self.enumerate_error = None

    def enumerate(self) -> list[DeviceDescriptor]:
        if self.enumerate_error:
            raise DeviceError(self.enumerate_error)
        return list(self.devices)

    def open(self, name: str, baud_rate: int) -> FakeHandle:
        if name not in {d.port for d in self.devices}:
            raise DeviceError(f"could not open port {name}: No such file or directory")
        if name in self.held:
            raise DeviceError(f"Could not exclusively lock port {name}")
        handle = FakeHandle(self, name, baud_rate)
        self.handles.setdefault(name, []).append(handle)
        self.held.add(name)
        return handle

    def last_handle(self, name: str) -> FakeHandle:
        return self.handles[name][-1]


class FakeTransport(Transport):
    """Transport recording sent frames; tests deliver server frames by hand."""

    def __init__(self):
        super().__init__()
        self.sent: list[str] = []
        self.send_error = None
        self.closed = False

    def send(self, frame: str) -> None:
        if self.send_error:
            raise TransportError(self.send_error)
        self.sent.append(frame)

    def close(self) -> None:
        self.closed = True
        self.on_disconnect.fire("client disconnect")

    def sent_messages(self) -> list[dict]:
        return [json.loads(frame) for frame in self.sent]

    def last_request(self) -> dict:
        return json.loads(self.sent[-1])

    def deliver(self, message) -> None:
        """Deliver a server frame (dict messages are JSON-encoded)."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self.on_frame.fire(message)

    def reply(self, **fields) -> None:
        """Answer the last request with the given fields."""
        self.deliver({"requestId": self.last_request()["requestId"], **fields})


@pytest.fixture
def driver():
    """In-memory device driver."""
    return FakeDriver()


@pytest.fixture
def transport():
    """In-memory client transport."""
    return FakeTransport()
