"""Domain-specific errors for serialnet."""


class SerialNetError(Exception):
    """Base error for serialnet."""


class ProtocolError(SerialNetError):
    """Raised when a message does not follow the wire protocol."""


class MalformedMessageError(ProtocolError):
    """Raised when a frame is not a parseable JSON object."""


class InvalidMessageError(ProtocolError):
    """Raised when a JSON message is missing fields or has wrong field types."""

    def __init__(self, message: str, request_id=None):
        super().__init__(message)
        self.request_id = request_id


class UnknownCommandError(InvalidMessageError):
    """Raised when a message carries an unrecognised cmd."""


class UnexpectedResponseError(ProtocolError):
    """Raised when a response does not match the command that was sent."""


class DeviceError(SerialNetError):
    """Raised when the device driver fails to enumerate, open, write or close."""


class PortNotOpenError(SerialNetError):
    """Raised when a command targets a port with no open session."""

    def __init__(self, port: str):
        super().__init__(f"Port is not open: {port}")
        self.port = port


class PortAlreadyOpenError(SerialNetError):
    """Raised when opening a port that already has a session on the connection."""

    def __init__(self, port: str):
        super().__init__(f"Port is already open: {port}")
        self.port = port


class TransportError(SerialNetError):
    """Base transport error."""


class ConnectionClosedError(TransportError):
    """Raised for requests still pending when the connection goes away."""


class RequestTimeoutError(SerialNetError):
    """Raised when no response arrives within the configured request timeout."""


class RemoteError(SerialNetError):
    """Error reported by the server in an error response or error push."""
