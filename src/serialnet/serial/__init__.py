"""
Serial device access for serialnet.

Provides the device driver interface and its pyserial implementation.
"""

from serialnet.serial.device import (
    ClosedEvent,
    DataEvent,
    DeviceDriver,
    DeviceEvent,
    DeviceHandle,
    ErrorEvent,
    SerialDeviceHandle,
    SerialDriver,
    get_driver,
)

__all__ = [
    "DeviceDriver",
    "DeviceHandle",
    "DeviceEvent",
    "DataEvent",
    "ErrorEvent",
    "ClosedEvent",
    "SerialDriver",
    "SerialDeviceHandle",
    "get_driver",
]
