"""Unit tests for RequestCorrelator."""

import pytest

from serialnet.client.correlator import RequestCorrelator
from serialnet.core.errors import (
    ConnectionClosedError,
    MalformedMessageError,
    RequestTimeoutError,
    TransportError,
    UnknownCommandError,
)
from serialnet.core.messages import (
    DataPush,
    EnumerateRequest,
    EnumerateResponse,
    ErrorPush,
    ErrorResponse,
    OpenRequest,
    SuccessResponse,
)


@pytest.fixture
def correlator(transport):
    return RequestCorrelator(transport)


class TestRequest:
    """Tests for sending requests."""

    def test_assigns_increasing_ids(self, correlator, transport):
        correlator.request(EnumerateRequest())
        correlator.request(EnumerateRequest())

        assert [m["requestId"] for m in transport.sent_messages()] == ["1", "2"]
        assert correlator.pending_count == 2

    def test_request_body_is_preserved(self, correlator, transport):
        correlator.request(OpenRequest("/dev/ttyUSB0", 9600))
        assert transport.last_request() == {
            "requestId": "1",
            "cmd": "open",
            "port": "/dev/ttyUSB0",
            "baudRate": 9600,
        }

    def test_response_resolves_future(self, correlator, transport):
        future = correlator.request(OpenRequest("/dev/ttyUSB0", 9600))
        transport.reply(cmd="success")

        assert future.result(timeout=1) == SuccessResponse("1")
        assert correlator.pending_count == 0

    def test_error_response_resolves_future(self, correlator, transport):
        """Error responses are answers, not transport failures."""
        future = correlator.request(OpenRequest("/dev/ttyUSB0", 9600))
        transport.reply(cmd="error", message="Error opening port: busy")

        assert future.result(timeout=1) == ErrorResponse("Error opening port: busy", "1")

    def test_responses_out_of_order(self, correlator, transport):
        first = correlator.request(EnumerateRequest())
        second = correlator.request(OpenRequest("/dev/ttyUSB0", 9600))

        transport.deliver({"requestId": "2", "cmd": "success"})
        transport.deliver({"requestId": "1", "cmd": "enumerate", "devices": []})

        assert first.result(timeout=1) == EnumerateResponse("1", ())
        assert second.result(timeout=1) == SuccessResponse("2")

    def test_unknown_response_is_dropped(self, correlator, transport):
        future = correlator.request(EnumerateRequest())
        transport.deliver({"requestId": "99", "cmd": "success"})

        assert not future.done()
        assert correlator.pending_count == 1

    def test_send_failure_rejects_only_that_request(self, correlator, transport):
        first = correlator.request(EnumerateRequest())
        transport.send_error = "socket closed"
        second = correlator.request(EnumerateRequest())

        with pytest.raises(TransportError, match="socket closed"):
            second.result(timeout=1)
        assert not first.done()
        assert correlator.pending_count == 1


class TestPushes:
    """Tests for push dispatch."""

    def test_push_is_fired(self, correlator, transport):
        pushes = []
        correlator.pushes += pushes.append

        transport.deliver({"cmd": "data", "port": "COM1", "data": [65]})
        transport.deliver({"cmd": "error", "message": "Serialport error: x", "port": "COM1"})

        assert pushes == [DataPush("COM1", b"A"), ErrorPush("Serialport error: x", port="COM1")]

    def test_push_does_not_resolve_requests(self, correlator, transport):
        future = correlator.request(EnumerateRequest())
        transport.deliver({"cmd": "closed", "port": "COM1"})
        assert not future.done()


class TestFailures:
    """Tests for transport-level failures."""

    def test_malformed_frame_rejects_all_pending(self, correlator, transport):
        errors = []
        correlator.errors += errors.append
        futures = [correlator.request(EnumerateRequest()) for _ in range(3)]

        transport.deliver("not json at all")

        for future in futures:
            with pytest.raises(MalformedMessageError):
                future.result(timeout=1)
        assert correlator.pending_count == 0
        assert len(errors) == 1

    def test_correlator_usable_after_malformed_frame(self, correlator, transport):
        transport.deliver("not json at all")
        future = correlator.request(EnumerateRequest())
        transport.reply(cmd="enumerate", devices=[])

        assert isinstance(future.result(timeout=1), EnumerateResponse)

    def test_invalid_response_rejects_its_request(self, correlator, transport):
        future = correlator.request(EnumerateRequest())
        other = correlator.request(EnumerateRequest())

        transport.deliver({"requestId": "1", "cmd": "bogus"})

        with pytest.raises(UnknownCommandError):
            future.result(timeout=1)
        assert not other.done()

    def test_connection_lost(self, correlator, transport):
        future = correlator.request(EnumerateRequest())

        transport.close()

        with pytest.raises(ConnectionClosedError):
            future.result(timeout=1)
        assert correlator.is_closed

    def test_connection_lost_fires_disconnected_after_failing_requests(self, correlator, transport):
        future = correlator.request(EnumerateRequest())
        seen = []
        correlator.disconnected += lambda reason: seen.append((reason, future.done()))

        transport.close()

        assert seen == [("client disconnect", True)]

    def test_request_after_close_fails_immediately(self, correlator, transport):
        transport.close()
        sent = len(transport.sent)

        future = correlator.request(EnumerateRequest())

        assert future.done()
        with pytest.raises(ConnectionClosedError):
            future.result()
        assert len(transport.sent) == sent

    def test_timeout(self, transport):
        correlator = RequestCorrelator(transport, request_timeout=0.05)
        future = correlator.request(EnumerateRequest())

        with pytest.raises(RequestTimeoutError):
            future.result(timeout=5)
        assert correlator.pending_count == 0

    def test_late_response_after_timeout_is_dropped(self, transport):
        correlator = RequestCorrelator(transport, request_timeout=0.05)
        future = correlator.request(EnumerateRequest())
        with pytest.raises(RequestTimeoutError):
            future.result(timeout=5)

        transport.deliver({"requestId": "1", "cmd": "success"})

        assert isinstance(future.exception(), RequestTimeoutError)

    def test_no_timeout_by_default(self, correlator):
        future = correlator.request(EnumerateRequest())
        assert correlator._pending["1"].timer is None
        assert not future.done()
