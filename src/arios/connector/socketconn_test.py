import unittest
from concurrent.futures import Future
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, calling, instance_of, is_, raises

from arios.conduit.socket_conduit import SocketConduit
from arios.conduit.socket_conduit_test import LoopbackServer, debug_timeout
from arios.connector.base import ConnectionNotConnectedError, ConnectionTimeoutError, ConnectorConnectedEvent, \
    ConnectorDisconnectedEvent, ConnectorError, wait_open
from arios.connector.socketconn import SocketConnector, TCPServerEndpoint


def unused_port():
    server = LoopbackServer()
    port = server.port
    server.close()
    return port


class TCPServerEndpointTest(unittest.TestCase):
    def test_address_prefers_ip(self):
        assert_that(TCPServerEndpoint('lamp1.local.', '192.0.2.5', 9000).address, is_(('192.0.2.5', 9000)))
        assert_that(TCPServerEndpoint('lamp1.local.', None, 9000).address, is_(('lamp1.local.', 9000)))

    def test_repr(self):
        assert_that(repr(TCPServerEndpoint(None, '192.0.2.5', 9000)), is_('TCPServerEndpoint(192.0.2.5:9000)'))


class SocketConnectorTest(unittest.TestCase):

    def setUp(self):
        self.server = LoopbackServer()
        self.sut = SocketConnector.to(LoopbackServer.host, self.server.port)

    def tearDown(self):
        self.sut.close()
        self.server.close()

    def test_not_connected_initially(self):
        assert_that(self.sut.connected, is_(False))
        assert_that(calling(lambda: self.sut.conduit), raises(ConnectionNotConnectedError))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_open(self):
        listener = Mock()
        self.sut.events += listener
        assert_that(self.sut.open().result(debug_timeout(2)), is_(self.sut))
        assert_that(self.sut.connected, is_(True))
        assert_that(self.sut.conduit, is_(instance_of(SocketConduit)))
        event = listener.call_args[0][0]
        assert_that(event, is_(instance_of(ConnectorConnectedEvent)))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_open_twice_returns_same_future(self):
        assert_that(self.sut.open(), is_(self.sut.open()))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_send_through_conduit(self):
        self.sut.open().result(debug_timeout(2))
        self.sut.conduit.send(b"CHECKBOX=false\n")
        assert_that(self.server.read(15), is_(b"CHECKBOX=false\n"))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_close(self):
        listener = Mock()
        self.sut.open().result(debug_timeout(2))
        self.sut.events += listener
        self.sut.close()
        self.sut.close()
        assert_that(self.sut.connected, is_(False))
        assert_that(self.sut.closed, is_(True))
        assert_that(listener.call_count, is_(1))
        assert_that(listener.call_args[0][0], is_(instance_of(ConnectorDisconnectedEvent)))

    def test_open_after_close(self):
        self.sut.close()
        assert_that(calling(self.sut.open().result).with_args(1), raises(ConnectorError, "closed"))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_connection_refused(self):
        sut = SocketConnector.to(LoopbackServer.host, unused_port(), report_errors=False)
        assert_that(calling(sut.open().result).with_args(debug_timeout(2)), raises(ConnectorError))
        assert_that(sut.connected, is_(False))


class WaitOpenTest(unittest.TestCase):
    def test_ready(self):
        connector = Mock()
        ready = Future()
        ready.set_result(connector)
        connector.open.return_value = ready
        assert_that(wait_open(connector, 1), is_(connector))

    def test_timeout(self):
        connector = Mock()
        connector.open.return_value = Future()
        assert_that(calling(wait_open).with_args(connector, 0.01), raises(ConnectionTimeoutError, "not ready"))
        connector.close.assert_not_called()

    def test_timeout_is_connector_error(self):
        assert_that(issubclass(ConnectionTimeoutError, ConnectorError), is_(True))
