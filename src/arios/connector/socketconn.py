import logging
import socket

from arios.conduit.base import Conduit
from arios.conduit.socket_conduit import SocketConduit
from arios.connector.base import AbstractConnector, ConnectorError

logger = logging.getLogger(__name__)


class TCPServerEndpoint:
    """
    Describes a TCP server endpoint.
    At least one of name or ip_address should be given. If both are given, the ip_address is used
    to connect.
    """
    def __init__(self, hostname, ip_address, port):
        self.hostname = hostname
        self.ip_address = ip_address
        self.port = port

    def key(self):
        """
        >>> TCPServerEndpoint(None, 'ipaddr', 55).key()
        'ipaddr:55'
        >>> TCPServerEndpoint('name', 'ipaddr', 55).key()
        'name:55'
        """
        return str(self.hostname or self.ip_address) + ':' + str(self.port)

    @property
    def address(self):
        """ the (host, port) pair to connect to """
        return (self.ip_address or self.hostname, self.port)

    def __repr__(self):
        return 'TCPServerEndpoint(%s)' % self.key()


class SocketConnector(AbstractConnector):
    """
    A connector that communicates data via a TCP socket
    """
    def __init__(self, endpoint: TCPServerEndpoint, connect_timeout=None, report_errors=True):
        """
        :param endpoint: the server to connect to
        :param connect_timeout: how long the socket may take to connect. None waits as long as
            the operating system allows. Callers usually bound the wait on the future from open() instead.
        :param report_errors: log connection failures as warnings, rather than at debug level
        """
        super().__init__()
        self._endpoint = endpoint
        self._connect_timeout = connect_timeout
        self._report_errors = report_errors

    @classmethod
    def to(cls, address, port, **kwargs):
        return cls(TCPServerEndpoint(None, address, port), **kwargs)

    @property
    def endpoint(self):
        return self._endpoint

    def _connect(self) -> Conduit:
        try:
            sock = socket.create_connection(self._endpoint.address, timeout=self._connect_timeout)
            sock.settimeout(None)
            logger.info("opened socket to %s" % self._endpoint.key())
            return SocketConduit(sock)
        except OSError as e:
            method = logger.warning if self._report_errors else logger.debug
            method("error opening socket to %s: %s" % (self._endpoint.key(), e))
            raise ConnectorError("unable to connect to %s" % self._endpoint.key()) from e
