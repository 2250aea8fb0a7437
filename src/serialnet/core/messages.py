"""
Wire messages for the serialnet protocol.

Every frame is one JSON object with a ``cmd`` field. Requests and the
responses answering them carry a ``requestId``; push messages reported by
the server on its own (device data, closure, errors) carry none and are
routed by ``port`` instead.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Optional, Union

from serialnet.core.errors import (
    InvalidMessageError,
    MalformedMessageError,
    UnknownCommandError,
)


class Command(Enum):
    """Values of the ``cmd`` field."""

    ENUMERATE = "enumerate"
    OPEN = "open"
    WRITE = "write"
    CLOSE = "close"
    SUCCESS = "success"
    ERROR = "error"
    DATA = "data"
    CLOSED = "closed"


RequestId = Union[str, int]


@dataclass(frozen=True)
class DeviceDescriptor:
    """Snapshot of one serial device as reported by enumeration."""

    port: str
    manufacturer: Optional[str] = None
    serial_number: Optional[str] = None
    pnp_id: Optional[str] = None
    location_id: Optional[str] = None
    vid: Optional[str] = None
    pid: Optional[str] = None

    _WIRE_FIELDS: ClassVar[tuple] = (
        ("manufacturer", "manufacturer"),
        ("serial_number", "serialNumber"),
        ("pnp_id", "pnpId"),
        ("location_id", "locationId"),
        ("vid", "vid"),
        ("pid", "pid"),
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeviceDescriptor":
        """Create DeviceDescriptor from its wire representation."""
        if not isinstance(data, dict) or not isinstance(data.get("port"), str):
            raise InvalidMessageError(f"Invalid device descriptor: {data!r}")
        return cls(
            port=data["port"],
            **{attr: data.get(key) for attr, key in cls._WIRE_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire representation, omitting unknown fields."""
        data: dict[str, Any] = {"port": self.port}
        for attr, key in self._WIRE_FIELDS:
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data


# --- Requests (client -> server) ---


class Request:
    """Base class of the requests a client may send."""

    command: ClassVar[Command]
    request_id: RequestId

    def to_dict(self) -> dict[str, Any]:
        return {"requestId": self.request_id, "cmd": self.command.value}


@dataclass(frozen=True)
class EnumerateRequest(Request):
    """List the devices available on the server."""

    request_id: RequestId = ""
    command: ClassVar[Command] = Command.ENUMERATE


@dataclass(frozen=True)
class OpenRequest(Request):
    """Open a device at the given baud rate."""

    port: str
    baud_rate: int
    request_id: RequestId = ""
    command: ClassVar[Command] = Command.OPEN

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(port=self.port, baudRate=self.baud_rate)
        return data


@dataclass(frozen=True)
class WriteRequest(Request):
    """Write bytes to an open device."""

    port: str
    data: bytes
    request_id: RequestId = ""
    command: ClassVar[Command] = Command.WRITE

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(port=self.port, data=list(self.data))
        return data


@dataclass(frozen=True)
class CloseRequest(Request):
    """Close an open device."""

    port: str
    request_id: RequestId = ""
    command: ClassVar[Command] = Command.CLOSE

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["port"] = self.port
        return data


# --- Responses (server -> client, answering a request) ---


class Response:
    """Base class of the answers to a request."""

    command: ClassVar[Command]
    request_id: Optional[RequestId]


@dataclass(frozen=True)
class SuccessResponse(Response):
    request_id: RequestId
    command: ClassVar[Command] = Command.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {"requestId": self.request_id, "cmd": self.command.value}


@dataclass(frozen=True)
class EnumerateResponse(Response):
    request_id: RequestId
    devices: tuple[DeviceDescriptor, ...] = field(default_factory=tuple)
    command: ClassVar[Command] = Command.ENUMERATE

    def to_dict(self) -> dict[str, Any]:
        return {
            "requestId": self.request_id,
            "cmd": self.command.value,
            "devices": [d.to_dict() for d in self.devices],
        }


@dataclass(frozen=True)
class ErrorResponse(Response):
    message: str
    request_id: Optional[RequestId] = None
    command: ClassVar[Command] = Command.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"cmd": self.command.value, "message": self.message}
        if self.request_id is not None:
            data["requestId"] = self.request_id
        return data


# --- Push messages (server -> client, unsolicited) ---


class PushMessage:
    """Base class of the messages the server sends without a request."""

    command: ClassVar[Command]
    port: Optional[str]


@dataclass(frozen=True)
class DataPush(PushMessage):
    port: str
    data: bytes
    command: ClassVar[Command] = Command.DATA

    def to_dict(self) -> dict[str, Any]:
        return {"cmd": self.command.value, "port": self.port, "data": list(self.data)}


@dataclass(frozen=True)
class ClosedPush(PushMessage):
    port: str
    command: ClassVar[Command] = Command.CLOSED

    def to_dict(self) -> dict[str, Any]:
        return {"cmd": self.command.value, "port": self.port}


@dataclass(frozen=True)
class ErrorPush(PushMessage):
    """Device error for ``port``, or a connection-level error when port is None."""

    message: str
    port: Optional[str] = None
    command: ClassVar[Command] = Command.ERROR

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"cmd": self.command.value, "message": self.message}
        if self.port is not None:
            data["port"] = self.port
        return data


Message = Union[Request, Response, PushMessage]


def encode_message(message: Message) -> str:
    """Serialize a message to a JSON text frame."""
    return json.dumps(message.to_dict())


def _load(frame: Union[str, bytes]) -> dict[str, Any]:
    """Parse a frame into a JSON object."""
    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessageError(f"Error parsing JSON: {e}") from e
    try:
        data = json.loads(frame)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"Error parsing JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _request_id(data: dict[str, Any], required: bool) -> Optional[RequestId]:
    request_id = data.get("requestId")
    if request_id is None:
        if required:
            raise InvalidMessageError("Missing requestId")
        return None
    if isinstance(request_id, bool) or not isinstance(request_id, (str, int)):
        raise InvalidMessageError(f"Invalid requestId: {request_id!r}")
    return request_id


def _port(data: dict[str, Any], request_id: Optional[RequestId] = None) -> str:
    port = data.get("port")
    if not isinstance(port, str) or not port:
        raise InvalidMessageError("Missing or invalid port", request_id)
    return port


def _data(data: dict[str, Any], request_id: Optional[RequestId] = None) -> bytes:
    payload = data.get("data")
    if not isinstance(payload, list):
        raise InvalidMessageError("Missing or invalid data", request_id)
    try:
        return bytes(payload)
    except (TypeError, ValueError) as e:
        raise InvalidMessageError(f"Invalid data: {e}", request_id) from e


def _command(data: dict[str, Any], request_id: Optional[RequestId]) -> Command:
    try:
        return Command(data.get("cmd"))
    except ValueError:
        raise UnknownCommandError(f"Unknown command: {data.get('cmd')!r}", request_id)


def decode_request(frame: Union[str, bytes]) -> Request:
    """
    Decode a client frame into a Request.

    Raises:
        MalformedMessageError: If the frame is not a JSON object
        InvalidMessageError: If the object is not a valid request. The
            exception carries the request id when one could be read.
    """
    data = _load(frame)
    request_id = _request_id(data, required=True)
    command = _command(data, request_id)

    if command is Command.ENUMERATE:
        return EnumerateRequest(request_id=request_id)
    elif command is Command.OPEN:
        baud_rate = data.get("baudRate")
        if isinstance(baud_rate, bool) or not isinstance(baud_rate, int) or baud_rate <= 0:
            raise InvalidMessageError(f"Invalid baudRate: {baud_rate!r}", request_id)
        return OpenRequest(
            port=_port(data, request_id), baud_rate=baud_rate, request_id=request_id
        )
    elif command is Command.WRITE:
        return WriteRequest(
            port=_port(data, request_id),
            data=_data(data, request_id),
            request_id=request_id,
        )
    elif command is Command.CLOSE:
        return CloseRequest(port=_port(data, request_id), request_id=request_id)
    else:
        raise UnknownCommandError(f"Unexpected command: {command.value}", request_id)


def decode_server_message(frame: Union[str, bytes]) -> Union[Response, PushMessage]:
    """
    Decode a server frame into a Response or a PushMessage.

    Messages carrying a requestId are responses; the rest are pushes.

    Raises:
        MalformedMessageError: If the frame is not a JSON object
        InvalidMessageError: If the object is not a valid server message
    """
    data = _load(frame)
    request_id = _request_id(data, required=False)
    command = _command(data, request_id)

    if command is Command.ERROR:
        message = data.get("message")
        if not isinstance(message, str):
            message = str(message)
        if request_id is not None:
            return ErrorResponse(message=message, request_id=request_id)
        port = data.get("port")
        return ErrorPush(message=message, port=port if isinstance(port, str) else None)

    if request_id is not None:
        if command is Command.SUCCESS:
            return SuccessResponse(request_id=request_id)
        elif command is Command.ENUMERATE:
            devices = data.get("devices")
            if not isinstance(devices, list):
                raise InvalidMessageError("Missing or invalid devices", request_id)
            return EnumerateResponse(
                request_id=request_id,
                devices=tuple(DeviceDescriptor.from_dict(d) for d in devices),
            )
    else:
        if command is Command.DATA:
            return DataPush(port=_port(data), data=_data(data))
        elif command is Command.CLOSED:
            return ClosedPush(port=_port(data))

    raise UnknownCommandError(f"Unexpected server message: {command.value}", request_id)
