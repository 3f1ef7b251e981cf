import socket
import sys
import threading
import unittest

import timeout_decorator
from hamcrest import assert_that, calling, is_, raises

from arios.conduit.base import TransportError
from arios.conduit.socket_conduit import SocketConduit


def debug_timeout(value):
    """
    Replaces the timeout value with a very large one if the tests are running under a debugger.
    This prevents the main thread from throwing an exception and exiting when the test times out
    due to a breakpoint.
    """
    return value if sys.gettrace() is None else 100000


class LoopbackServer:
    """
    A TCP server on the loopback interface that accepts a single client on a background thread.
    The accepted socket is available from client() once connected.
    """
    host = '127.0.0.1'

    def __init__(self):
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server.bind((self.host, 0))
        self.server.listen(1)
        self.port = self.server.getsockname()[1]
        self.accepted = threading.Event()
        self._client = None
        self.thread = threading.Thread(target=self._accept, daemon=True)
        self.thread.start()

    def _accept(self):
        try:
            self._client, _ = self.server.accept()
        except OSError:
            return
        self.accepted.set()

    def client(self, timeout=5) -> socket.socket:
        if not self.accepted.wait(debug_timeout(timeout)):
            raise AssertionError("no client connected")
        return self._client

    def read(self, size, timeout=5):
        """ reads exactly size bytes from the client """
        client = self.client(timeout)
        client.settimeout(debug_timeout(timeout))
        data = b''
        while len(data) < size:
            chunk = client.recv(size - len(data))
            if not chunk:
                break
            data += chunk
        return data

    def close(self):
        if self._client is not None:
            self._client.close()
        try:
            self.server.shutdown(socket.SHUT_RDWR)    # wakes the accepting thread
        except OSError:
            pass
        self.server.close()


class SocketConduitTest(unittest.TestCase):

    def setUp(self):
        self.server = LoopbackServer()
        self.sock = socket.create_connection((LoopbackServer.host, self.server.port))
        self.sut = SocketConduit(self.sock)

    def tearDown(self):
        self.sut.close()
        self.server.close()

    def test_open(self):
        assert_that(self.sut.open, is_(True))
        assert_that(self.sut.target, is_(self.sock))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_send(self):
        self.sut.send(b"TOGGLE=true\n")
        assert_that(self.server.read(12), is_(b"TOGGLE=true\n"))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_chunks_until_peer_closes(self):
        client = self.server.client()
        client.sendall(b"bye")
        client.shutdown(socket.SHUT_WR)
        assert_that(b''.join(self.sut.chunks()), is_(b"bye"))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_close_wakes_reader(self):
        self.server.client()
        received = []
        reader = threading.Thread(target=lambda: received.extend(self.sut.chunks()))
        reader.start()
        self.sut.close()
        reader.join()
        assert_that(received, is_([]))
        assert_that(self.sut.open, is_(False))

    def test_close_is_idempotent(self):
        self.sut.close()
        self.sut.close()
        assert_that(self.sut.open, is_(False))

    def test_send_after_close(self):
        self.sut.close()
        assert_that(calling(self.sut.send).with_args(b"x"), raises(TransportError, "closed"))

    def test_send_error_wrapped(self):
        self.sock.close()
        assert_that(calling(self.sut.send).with_args(b"x"), raises(TransportError))
        assert_that(self.sut.open, is_(False))

    def test_transport_error_is_ioerror(self):
        assert_that(issubclass(TransportError, IOError), is_(True))
