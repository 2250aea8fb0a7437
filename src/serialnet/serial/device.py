"""
Serial device driver for serialnet.

Defines the driver interface the server needs (enumerate devices, open a
handle, write, close) and a pyserial implementation. An open handle runs a
reader thread and reports what happens on the device as a typed event
stream through ``handle.events``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

import serial
import serial.tools.list_ports

from serialnet.core.config import SerialConfig
from serialnet.core.errors import DeviceError
from serialnet.core.messages import DeviceDescriptor
from serialnet.support.events import EventSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataEvent:
    """Bytes received from the device."""

    data: bytes


@dataclass(frozen=True)
class ErrorEvent:
    """Runtime error reported by the device."""

    reason: str


@dataclass(frozen=True)
class ClosedEvent:
    """The device closed. Always the last event of a handle."""

    reason: Optional[str] = None


DeviceEvent = Union[DataEvent, ErrorEvent, ClosedEvent]


class DeviceHandle(ABC):
    """An open device. Subscribers receive DeviceEvent objects via ``events``."""

    def __init__(self, name: str):
        self.name = name
        self.events = EventSource()

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    def start(self) -> None:
        """Begin delivering events. Called once the caller has subscribed."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """
        Write bytes to the device.

        Returns:
            Number of bytes written

        Raises:
            DeviceError: If the write fails or the handle is closed
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close the device.

        Raises:
            DeviceError: If the driver fails to close the device
        """
        pass


class DeviceDriver(ABC):
    """Abstract base class for device drivers."""

    @abstractmethod
    def enumerate(self) -> list[DeviceDescriptor]:
        """
        List the devices currently present.

        Raises:
            DeviceError: If enumeration fails
        """
        pass

    @abstractmethod
    def open(self, name: str, baud_rate: int) -> DeviceHandle:
        """
        Open a device by name.

        Raises:
            DeviceError: If the device cannot be opened
        """
        pass


def _hex_id(value: Optional[int]) -> Optional[str]:
    return f"{value:04x}" if value is not None else None


def descriptor_from_port_info(info) -> DeviceDescriptor:
    """Create DeviceDescriptor from a pyserial ListPortInfo."""
    return DeviceDescriptor(
        port=info.device,
        manufacturer=info.manufacturer,
        serial_number=info.serial_number,
        pnp_id=info.hwid if info.hwid and info.hwid != "n/a" else None,
        location_id=info.location,
        vid=_hex_id(info.vid),
        pid=_hex_id(info.pid),
    )


class SerialDeviceHandle(DeviceHandle):
    """Handle on a pyserial port with a background reader thread."""

    def __init__(self, port: serial.Serial, read_size: int = 4096):
        super().__init__(port.port)
        self._serial = port
        self.read_size = read_size
        self._closing = False
        self._finished = threading.Event()
        self._reader = threading.Thread(
            target=self._read_loop,
            name=f"serialnet-reader-{port.port}",
            daemon=True,
        )

    @property
    def is_open(self) -> bool:
        return self._serial.is_open and not self._finished.is_set()

    def start(self) -> None:
        if not self._reader.is_alive() and not self._finished.is_set():
            self._reader.start()

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise DeviceError(f"Port is closed: {self.name}")
        try:
            written = self._serial.write(data)
        except (serial.SerialException, OSError, TypeError) as e:
            raise DeviceError(str(e)) from e
        return len(data) if written is None else written

    def close(self) -> None:
        self._closing = True
        if self._reader.is_alive() and threading.current_thread() is not self._reader:
            # reads time out quickly, so the reader notices _closing
            self._reader.join(timeout=max(1.0, (self._serial.timeout or 0) * 10))
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as e:
            raise DeviceError(str(e)) from e

    def _read_loop(self) -> None:
        reason = None
        while not self._closing:
            try:
                size = max(1, min(self._serial.in_waiting, self.read_size))
                data = self._serial.read(size)
            except (serial.SerialException, OSError, TypeError) as e:
                if self._closing:
                    break
                reason = str(e) or type(e).__name__
                logger.warning(f"Serial port {self.name} failed: {reason}")
                break
            if data:
                self.events.fire(DataEvent(data))

        if reason is not None:
            try:
                self._serial.close()
            except (serial.SerialException, OSError):
                pass
            self.events.fire(ErrorEvent(reason))
        self._finished.set()
        self.events.fire(ClosedEvent(reason))


class SerialDriver(DeviceDriver):
    """Device driver backed by pyserial."""

    def __init__(
        self,
        exclusive: bool = True,
        read_size: int = 4096,
        read_timeout: float = 0.1,
    ):
        """
        Initialize driver.

        Args:
            exclusive: Request exclusive access to opened ports (POSIX)
            read_size: Maximum bytes per data event
            read_timeout: Reader poll interval in seconds
        """
        self.exclusive = exclusive
        self.read_size = read_size
        self.read_timeout = read_timeout

    def enumerate(self) -> list[DeviceDescriptor]:
        try:
            ports = serial.tools.list_ports.comports()
        except Exception as e:
            raise DeviceError(str(e)) from e
        return [descriptor_from_port_info(info) for info in sorted(ports, key=lambda p: p.device)]

    def open(self, name: str, baud_rate: int) -> DeviceHandle:
        options = {"timeout": self.read_timeout}
        if self.exclusive:
            options["exclusive"] = True
        try:
            port = serial.Serial(port=name, baudrate=baud_rate, **options)
        except (serial.SerialException, ValueError, OSError) as e:
            raise DeviceError(str(e)) from e

        handle = SerialDeviceHandle(port, read_size=self.read_size)
        logger.debug(f"Opened {name} at {baud_rate} baud")
        return handle


def get_driver(config: Optional[SerialConfig] = None) -> DeviceDriver:
    """Create the pyserial driver from configuration."""
    config = config or SerialConfig()
    return SerialDriver(
        exclusive=config.exclusive,
        read_size=config.read_size,
        read_timeout=config.read_timeout,
    )
