"""Unit tests for ConnectionLifecycle and ConnectionHub."""

import json
import threading

import pytest

from serialnet.server.lifecycle import ConnectionHub, ConnectionLifecycle
from serialnet.server.gateway import DeviceGateway


class Outbox:
    """Collects frames sent to one client."""

    def __init__(self):
        self.frames = []
        self.error = None

    def __call__(self, frame):
        if self.error:
            raise self.error
        self.frames.append(frame)

    @property
    def messages(self):
        return [json.loads(frame) for frame in self.frames]

    @property
    def last(self):
        return self.messages[-1]


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def connection(driver, outbox):
    return ConnectionLifecycle("sid-1234567890", DeviceGateway(driver), outbox, "10.0.0.5")


def _request(connection, **fields):
    connection.on_message(json.dumps(fields))


class TestOnMessage:
    """Tests for inbound frame handling."""

    def test_enumerate(self, connection, outbox):
        _request(connection, requestId="1", cmd="enumerate")

        reply = outbox.last
        assert reply["cmd"] == "enumerate"
        assert reply["requestId"] == "1"
        assert len(reply["devices"]) == 3

    def test_numeric_request_id_is_echoed(self, connection, outbox):
        _request(connection, requestId=17, cmd="enumerate")
        assert outbox.last["requestId"] == 17

    def test_open_write_close(self, connection, outbox, driver):
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        _request(connection, requestId="2", cmd="write", port="/dev/ttyUSB0", data=[104, 105])
        _request(connection, requestId="3", cmd="close", port="/dev/ttyUSB0")

        assert outbox.messages == [
            {"requestId": "1", "cmd": "success"},
            {"requestId": "2", "cmd": "success"},
            {"requestId": "3", "cmd": "success"},
        ]
        handle = driver.last_handle("/dev/ttyUSB0")
        assert handle.written == [b"hi"]
        assert handle.closed is True

    def test_malformed_frame(self, connection, outbox):
        connection.on_message("{oops")

        reply = outbox.last
        assert reply["cmd"] == "error"
        assert "requestId" not in reply
        assert reply["message"].startswith("Error parsing JSON")

    def test_connection_survives_malformed_frame(self, connection, outbox):
        connection.on_message("{oops")
        _request(connection, requestId="1", cmd="enumerate")
        assert outbox.last["cmd"] == "enumerate"

    def test_unknown_command_with_request_id(self, connection, outbox):
        _request(connection, requestId="5", cmd="reboot")

        reply = outbox.last
        assert reply["cmd"] == "error"
        assert reply["requestId"] == "5"

    def test_invalid_request_without_request_id(self, connection, outbox):
        _request(connection, cmd="enumerate")

        reply = outbox.last
        assert reply["cmd"] == "error"
        assert "requestId" not in reply

    def test_handler_crash_becomes_internal_error(self, connection, outbox):
        def crash(request):
            raise RuntimeError("bug")

        connection.registry.handle = crash
        _request(connection, requestId="1", cmd="enumerate")

        assert outbox.last == {"requestId": "1", "cmd": "error", "message": "Internal server error"}

    def test_device_data_is_pushed(self, connection, outbox, driver):
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        driver.last_handle("/dev/ttyUSB0").receive(b"OK\r\n")

        assert outbox.last == {"cmd": "data", "port": "/dev/ttyUSB0", "data": [79, 75, 13, 10]}

    def test_device_close_is_pushed(self, connection, outbox, driver):
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        driver.last_handle("/dev/ttyUSB0").unplug()

        assert outbox.last == {"cmd": "closed", "port": "/dev/ttyUSB0"}
        assert "/dev/ttyUSB0" not in connection.registry

    def test_send_failure_is_logged_not_raised(self, connection, outbox):
        outbox.error = ConnectionError("socket gone")
        _request(connection, requestId="1", cmd="enumerate")
        assert outbox.frames == []


class TestOnDisconnect:
    """Tests for connection teardown."""

    def test_closes_all_sessions(self, connection, driver):
        for i, port in enumerate(["/dev/ttyUSB0", "/dev/ttyUSB1", "/dev/ttyACM0"]):
            _request(connection, requestId=str(i), cmd="open", port=port, baudRate=9600)

        assert connection.on_disconnect("transport close") == 3

        assert connection.is_closed
        for port in ["/dev/ttyUSB0", "/dev/ttyUSB1", "/dev/ttyACM0"]:
            assert driver.last_handle(port).closed is True

    def test_second_disconnect_is_noop(self, connection):
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        connection.on_disconnect()
        assert connection.on_disconnect() == 0

    def test_no_pushes_after_disconnect(self, connection, outbox, driver):
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        handle = driver.last_handle("/dev/ttyUSB0")
        handle.close_error = "EIO"
        sent = len(outbox.frames)

        connection.on_disconnect()
        handle.unplug()

        assert len(outbox.frames) == sent


class TestPushForwarding:
    """Tests for push delivery failures."""

    def test_failed_data_push_reports_error(self, driver):
        sent = []

        def send(frame):
            if '"cmd": "data"' in frame:
                raise ConnectionError("buffer full")
            sent.append(json.loads(frame))

        connection = ConnectionLifecycle("sid-1", DeviceGateway(driver), send)
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        driver.last_handle("/dev/ttyUSB0").receive(b"x")

        assert sent[-1] == {"cmd": "error", "message": "Error sending received data"}

    def test_failed_closed_push_is_only_logged(self, driver):
        sent = []

        def send(frame):
            if '"cmd": "closed"' in frame:
                raise ConnectionError("socket gone")
            sent.append(json.loads(frame))

        connection = ConnectionLifecycle("sid-1", DeviceGateway(driver), send)
        _request(connection, requestId="1", cmd="open", port="/dev/ttyUSB0", baudRate=9600)
        driver.last_handle("/dev/ttyUSB0").unplug()

        assert sent == [{"requestId": "1", "cmd": "success"}]


class TestConnectionHub:
    """Tests for ConnectionHub."""

    @pytest.fixture
    def hub(self, driver):
        return ConnectionHub(driver)

    def test_connect_and_dispatch(self, hub):
        outbox = Outbox()
        hub.connect("a", outbox, "127.0.0.1")

        assert hub.dispatch("a", '{"requestId": "1", "cmd": "enumerate"}') is True
        assert outbox.last["cmd"] == "enumerate"
        assert hub.connection_count == 1

    def test_dispatch_unknown_connection(self, hub):
        assert hub.dispatch("nobody", "{}") is False

    def test_connections_have_separate_registries(self, hub):
        a, b = Outbox(), Outbox()
        hub.connect("a", a)
        hub.connect("b", b)

        hub.dispatch("a", '{"requestId": "1", "cmd": "open", "port": "/dev/ttyUSB0", "baudRate": 9600}')
        hub.dispatch("b", '{"requestId": "1", "cmd": "write", "port": "/dev/ttyUSB0", "data": [1]}')

        assert b.last == {"requestId": "1", "cmd": "error", "message": "Port is not open: /dev/ttyUSB0"}

    def test_disconnect_frees_devices_for_new_connection(self, hub, driver):
        hub.connect("a", Outbox())
        hub.dispatch("a", '{"requestId": "1", "cmd": "open", "port": "/dev/ttyUSB0", "baudRate": 9600}')

        assert hub.disconnect("a", "transport close") == 1
        assert hub.connection_count == 0

        outbox = Outbox()
        hub.connect("b", outbox)
        hub.dispatch("b", '{"requestId": "1", "cmd": "open", "port": "/dev/ttyUSB0", "baudRate": 9600}')
        assert outbox.last == {"requestId": "1", "cmd": "success"}

    def test_disconnect_unknown(self, hub):
        assert hub.disconnect("nobody") == 0

    def test_reconnect_with_same_id_replaces(self, hub, driver):
        hub.connect("a", Outbox())
        hub.dispatch("a", '{"requestId": "1", "cmd": "open", "port": "/dev/ttyUSB0", "baudRate": 9600}')

        hub.connect("a", Outbox())

        assert driver.last_handle("/dev/ttyUSB0").closed is True
        assert hub.connection_count == 1

    def test_shutdown(self, hub, driver):
        hub.connect("a", Outbox())
        hub.connect("b", Outbox())
        hub.dispatch("a", '{"requestId": "1", "cmd": "open", "port": "/dev/ttyUSB0", "baudRate": 9600}')

        hub.shutdown()

        assert hub.connection_count == 0
        assert driver.last_handle("/dev/ttyUSB0").closed is True

    def test_connections_info(self, hub):
        hub.connect("a", Outbox(), "192.168.1.10")
        hub.dispatch("a", '{"requestId": "1", "cmd": "open", "port": "/dev/ttyUSB1", "baudRate": 9600}')

        info = hub.get_connections_info()

        assert info[0]["connection_id"] == "a"
        assert info[0]["address"] == "192.168.1.10"
        assert info[0]["sessions"][0]["port"] == "/dev/ttyUSB1"

    def test_connection_count_during_concurrent_connects(self, hub):
        counts = []

        def churn(name):
            for _ in range(50):
                hub.connect(name, Outbox())
                counts.append(hub.connection_count)
                hub.disconnect(name)

        workers = [threading.Thread(target=churn, args=(f"c{i}",)) for i in range(4)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert all(1 <= count <= 4 for count in counts)
        assert hub.connection_count == 0
