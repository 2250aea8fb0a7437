"""
Device gateway for the serialnet server.

Owns the device driver shared by all connections. Performs enumerate, open,
write and close on behalf of a session registry and turns the events of an
open handle into push messages for the connection that opened it.
"""

import logging
from typing import Callable, Optional

from serialnet.core.errors import DeviceError
from serialnet.core.messages import (
    ClosedPush,
    DataPush,
    DeviceDescriptor,
    ErrorPush,
    PushMessage,
)
from serialnet.serial.device import (
    ClosedEvent,
    DataEvent,
    DeviceDriver,
    DeviceEvent,
    DeviceHandle,
    ErrorEvent,
)

logger = logging.getLogger(__name__)

PushSink = Callable[[PushMessage], None]


class DeviceGateway:
    """Front for the device driver used by every connection."""

    def __init__(self, driver: DeviceDriver):
        self.driver = driver

    def enumerate(self) -> list[DeviceDescriptor]:
        """
        List available devices.

        Raises:
            DeviceError: If the driver fails to enumerate
        """
        try:
            return list(self.driver.enumerate())
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(str(e)) from e

    def open(self, port: str, baud_rate: int) -> DeviceHandle:
        """
        Open a device. Events are not delivered until ``handle.start()``.

        Raises:
            DeviceError: If the device cannot be opened
        """
        try:
            handle = self.driver.open(port, baud_rate)
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(str(e)) from e
        logger.debug(f"Device {port} opened at {baud_rate} baud")
        return handle

    def write(self, handle: DeviceHandle, data: bytes) -> int:
        """
        Write bytes to an open handle.

        Raises:
            DeviceError: If the write fails
        """
        try:
            return handle.write(data)
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(str(e)) from e

    def close(self, handle: DeviceHandle) -> None:
        """
        Close a handle.

        Raises:
            DeviceError: If the driver fails to close the device
        """
        try:
            handle.close()
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(str(e)) from e
        logger.debug(f"Device {handle.name} closed")

    def subscribe(
        self,
        handle: DeviceHandle,
        port: str,
        push: PushSink,
        on_closed: Optional[Callable[[Optional[str]], None]] = None,
    ) -> Callable[[], None]:
        """
        Forward the events of ``handle`` to ``push`` as push messages.

        Args:
            handle: Open device handle
            port: Device name the client knows the session by
            push: Receives one push message per device event
            on_closed: Called with the close reason before the closed push

        Returns:
            Function that removes the subscription
        """

        def listener(event: DeviceEvent) -> None:
            if isinstance(event, DataEvent):
                push(DataPush(port=port, data=bytes(event.data)))
            elif isinstance(event, ErrorEvent):
                logger.error(f"Serialport error on {port}: {event.reason}")
                push(ErrorPush(message=f"Serialport error: {event.reason}", port=port))
            elif isinstance(event, ClosedEvent):
                logger.warning(f"Serialport {port} disconnected: {event.reason}")
                if on_closed is not None:
                    on_closed(event.reason)
                push(ClosedPush(port=port))
            else:
                logger.error(f"Dropping unknown device event from {port}: {event!r}")

        handle.events += listener

        def unsubscribe() -> None:
            handle.events -= listener

        return unsubscribe
