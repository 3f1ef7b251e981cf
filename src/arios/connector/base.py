import logging
import threading
from abc import abstractmethod
from concurrent.futures import Future, TimeoutError as FutureTimeoutError

from arios import AriosError
from arios.conduit.base import Conduit
from arios.support.events import EventSource

logger = logging.getLogger(__name__)


class ConnectorError(AriosError):
    """ A connection could not be made, or was used when it was not open. """


class ConnectionNotConnectedError(ConnectorError):
    """ The conduit was requested while the connector is not connected. """


class ConnectionTimeoutError(ConnectorError):
    """ The connection did not become ready in time. """


class ConnectorEvent:
    """ posted on a connector's events source """
    def __init__(self, connector):
        self.connector = connector


class ConnectorConnectedEvent(ConnectorEvent):
    """ The conduit is open. """


class ConnectorDisconnectedEvent(ConnectorEvent):
    """ The conduit was closed by close(). """


class Connector:
    """
    Opens a conduit to a single endpoint. A connector is used for one connection:
    once closed it cannot be opened again.
    """

    def __init__(self):
        self.events = EventSource()

    @property
    @abstractmethod
    def endpoint(self):
        """ where the conduit goes, e.g. a TCPServerEndpoint """
        raise NotImplementedError

    @property
    @abstractmethod
    def connected(self) -> bool:
        """ True while the conduit is open """
        raise NotImplementedError

    @property
    @abstractmethod
    def conduit(self) -> Conduit:
        """ the open conduit. Raises ConnectionNotConnectedError when there isn't one. """
        raise ConnectionNotConnectedError

    @abstractmethod
    def open(self) -> Future:
        """
        Starts connecting to the endpoint and returns without waiting.
        :return: a future that resolves to this connector once the conduit is ready, or holds
            the ConnectorError describing why it could not be opened.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """ Closes the conduit, if open. Calling close more than once has no further effect. """
        raise NotImplementedError


class AbstractConnector(Connector):
    """
    Manages the connection cycle to an endpoint.
    The connection is made on a background thread by the _connect() template method.
    """

    def __init__(self, log=logger):
        super().__init__()
        self.logger = log
        self._conduit = None
        self._closed = False
        self._ready = None
        self._lock = threading.Lock()

    @property
    def connected(self):
        conduit = self._conduit
        return conduit is not None and conduit.open

    @property
    def closed(self):
        return self._closed

    def open(self) -> Future:
        with self._lock:
            if self._ready is not None:
                return self._ready
            ready = self._ready = Future()
            if self._closed:
                ready.set_exception(ConnectorError("connector to %s is closed" % (self.endpoint,)))
                return ready
            ready.set_running_or_notify_cancel()
        thread = threading.Thread(target=self._open_in_background, args=(ready,),
                                  name="connect %s" % (self.endpoint,), daemon=True)
        thread.start()
        return ready

    def _open_in_background(self, ready: Future):
        try:
            conduit = self._connect()
        except ConnectorError as e:
            ready.set_exception(e)
            return
        except Exception as e:
            self.logger.exception("unexpected error connecting to %s" % (self.endpoint,))
            ready.set_exception(ConnectorError(str(e)))
            return

        with self._lock:
            closed = self._closed
            if not closed:
                self._conduit = conduit
        if closed:
            # closed while the connection was being made
            conduit.close()
            ready.set_exception(ConnectorError("connector to %s was closed while connecting" % (self.endpoint,)))
            return
        ready.set_result(self)
        self.events.fire(ConnectorConnectedEvent(self))

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            conduit = self._conduit
            self._conduit = None
        if conduit is None:
            return
        self._disconnect()
        conduit.close()
        self.events.fire(ConnectorDisconnectedEvent(self))

    @abstractmethod
    def _connect(self) -> Conduit:
        """
        Makes the connection and returns the open conduit. Runs on a background thread.
        Subclasses raise ConnectorError when the endpoint can't be reached.
        """
        raise NotImplementedError

    def _disconnect(self):
        """ hook called by close() just before the conduit is closed """
        pass

    @property
    def conduit(self) -> Conduit:
        conduit = self._conduit
        if conduit is None or not conduit.open:
            raise ConnectionNotConnectedError("not connected to %s" % (self.endpoint,))
        return conduit


def wait_open(connector: Connector, timeout=None):
    """
    Opens a connector and waits for its conduit to be ready.
    :return: the connector
    :raises ConnectionTimeoutError: the conduit was not ready within the timeout. The connector is left
        as it is; the caller decides whether to close it.
    :raises ConnectorError: the connection could not be made.
    """
    try:
        return connector.open().result(timeout)
    except FutureTimeoutError:
        raise ConnectionTimeoutError("%s was not ready after %ss" % (connector.endpoint, timeout)) from None
