import socket
import threading

from arios.conduit import base
from arios.conduit.base import TransportError

# the most bytes taken from the socket in one read
chunk_size = 65536


class SocketConduit(base.Conduit):
    """
    A conduit that provides communication via a socket.
    :param sock The open, connected socket
    """
    def __init__(self, sock: socket.socket, size=chunk_size):
        """
        :param sock: the client socket that represents the connection
        :type sock: socket
        :param size: the maximum size of a received chunk
        """
        self.sock = sock
        self.size = size
        self._closed = False
        self._lock = threading.Lock()

    @property
    def open(self) -> bool:
        return not self._closed and self.sock.fileno() >= 0

    @property
    def target(self):
        return self.sock

    def send(self, data: bytes):
        with self._lock:
            if self._closed:
                raise TransportError("conduit is closed")
            try:
                self.sock.sendall(data)
            except OSError as e:
                raise TransportError("error sending to %s: %s" % (self._peer(), e)) from e

    def chunks(self):
        while not self._closed:
            try:
                data = self.sock.recv(self.size)
            except OSError as e:
                if self._closed:    # closed from another thread while waiting
                    return
                raise TransportError("error receiving from %s: %s" % (self._peer(), e)) from e
            if not data:
                return
            yield data

    def _peer(self):
        try:
            return self.sock.getpeername()
        except OSError:
            return 'closed socket'

    def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            # wakes up a thread blocked in recv()
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass    # the peer may have closed the socket
        finally:
            self.sock.close()
