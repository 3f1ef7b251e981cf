import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager

from arios import AriosError
from arios.conduit.base import TransportError
from arios.conduit.discovery import DiscoveryCancelled, DiscoveryError
from arios.conduit.server_discovery import Cancellation, ServiceResolver
from arios.connector.base import Connector, ConnectionTimeoutError, ConnectorError, wait_open
from arios.connector.socketconn import SocketConnector
from arios.device import Device, DiscoveryResult
from arios.events import DeviceChangedEvent, SessionEndedEvent, StatusChangedEvent
from arios.protocol.updates import UpdateFormatError, encode_update
from arios.settings import Settings
from arios.status import ConnectionFlags, Status, derive_status, status_text
from arios.support.async_loop import AsyncLoop
from arios.support.events import EventSource
from arios.support.retry_strategy import StagedRetryStrategy

logger = logging.getLogger(__name__)


class PeerClosed(AriosError):
    """ The peer sent data. In this protocol that only happens when the peer is closing the connection. """


class ReceiveLoop(AsyncLoop):
    """
    Watches an open connection on a background thread.

    The loop runs once: it returns when the peer sends anything, ends the stream, or the
    connection fails, and reports which of these happened to the session.

    :param session  The session that owns the connection
    :param connector  The open connector to watch
    """

    def __init__(self, session, connector: Connector, log=logger):
        super().__init__(name="receive %s" % (connector.endpoint,), log=log)
        self.session = session
        self.connector = connector
        self.interrupted = threading.Event()     # set when the session stops this loop

    def loop(self):
        try:
            for chunk in self.connector.conduit.chunks():
                if chunk:
                    raise PeerClosed("received %d bytes from %s" % (len(chunk), self.connector.endpoint))
            self.session._transport_lost(self.connector, None)
        finally:
            self.stop_event.set()

    def exception_handler(self, e):
        if isinstance(e, PeerClosed):
            self.logger.debug(str(e))
            self.session._peer_closed(self.connector, self.interrupted)
        else:
            self.session._transport_lost(self.connector, e)

    def stop(self, join=True, timeout=None):
        self.interrupted.set()
        super().stop(join, timeout)


class SessionManager:
    """
    Finds a device by name, connects to it and keeps track of the connection.

    The session owns the current Device and five connection flags. Every change to them is made
    while holding the session lock, and the visible status is derived from them before the lock is
    released. Events for the changes are fired after the lock has been released:

    - StatusChangedEvent when the status or its text changes
    - DeviceChangedEvent when a discovered device is adopted
    - SessionEndedEvent when discovery fails, the device's application isn't running, or the
      connection is torn down. Marker tracking listens for this to restart.

    Batches from different threads are delivered one at a time. A status change that reaches
    delivery after a newer one has been delivered is dropped, so the last status a handler sees
    is the session's status.

    Discovery and connection setup run on the session's worker threads, and each connection
    is watched by a ReceiveLoop. Handlers are called on those threads and must return quickly.

    :param resolver  finds and resolves devices. Defaults to a zeroconf ServiceResolver.
    :param connector_factory  a callable taking (address, port) and returning an unopened Connector.
    :param settings  timeouts and the service type to look for
    """

    def __init__(self, resolver=None, connector_factory=None, settings: Settings=None, log=logger):
        self.settings = settings or Settings()
        self.resolver = resolver or ServiceResolver(
            retry_strategy=StagedRetryStrategy(*self.settings.discovery.resolve_stages))
        self.connector_factory = connector_factory or SocketConnector.to
        self.logger = log
        self.device = Device()
        self.events = EventSource(log)
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix='arios-session')
        self._lock = threading.RLock()
        self._pending = []              # (status sequence or None, event) to fire once the lock is released
        self._status_sequence = 0
        self._delivery_lock = threading.RLock()
        self._delivered_status = 0      # sequence of the last status change handed to the handlers
        self._flags = ConnectionFlags()
        self._status = Status.NONE
        self._text = status_text(Status.NONE)
        self._connector = None
        self._receive_loop = None
        self._discovery = None          # the Cancellation for the discovery in flight
        self._generation = 0            # incremented by each discovery, so stale results are dropped

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # observation ---------------------------------------------------------

    @property
    def status(self) -> Status:
        with self._lock:
            return self._status

    @property
    def status_text(self):
        with self._lock:
            return self._text

    @property
    def flags(self) -> ConnectionFlags:
        """ a copy of the current connection flags """
        with self._lock:
            return self._flags.copy()

    @property
    def connected(self):
        with self._lock:
            return self._flags.active_connection and self._connector is not None

    # state changes --------------------------------------------------------

    @contextmanager
    def _changing(self):
        """
        Holds the lock while state is changed, then fires the events the change produced.
        Not to be nested.
        """
        with self._lock:
            yield
            events, self._pending = self._pending, []
        if events:
            self._deliver(events)

    def _deliver(self, events):
        with self._delivery_lock:
            for sequence, event in events:
                if sequence is not None:
                    if sequence < self._delivered_status:
                        self.logger.debug("dropping superseded %s" % event.status.name)
                        continue
                    self._delivered_status = sequence
                self.events.fire(event)

    def _set_flags(self, **changes):
        """ changes flags and refreshes the status. Lock must be held. """
        self._flags.update(**changes)
        self._refresh_status()

    def _refresh_status(self):
        device = self.device.snapshot()
        status = derive_status(self._flags, device.running)
        text = status_text(status, device)
        if status is not self._status or text != self._text:
            self._status = status
            self._text = text
            self.logger.info("status: %s %s" % (status.name, text))
            self._status_sequence += 1
            self._pending.append((self._status_sequence, StatusChangedEvent(self, status, text)))

    def _end_session(self):
        """ tells marker tracking to start over. Lock must be held. """
        self._pending.append((None, SessionEndedEvent(self)))

    # discovery -----------------------------------------------------------

    def on_target_identified(self, name) -> Future:
        """ A reference marker was recognized. Looks for the device with the marker's name. """
        return self.start_discovery(name)

    def start_discovery(self, target_name) -> Future:
        """
        Looks for the named device on a worker thread, adopts it and connects.
        A discovery that is still running is cancelled; its result is never adopted.
        :return: a future that completes with True when a connection was established, or False.
            Callers don't need to wait on it.
        """
        cancellation = Cancellation()
        with self._lock:
            previous = self._discovery
            self._discovery = cancellation
            self._generation += 1
            generation = self._generation
        if previous is not None:
            previous.cancel()
        self.logger.info("starting discovery of %s" % target_name)
        return self._executor.submit(self._discover, target_name, generation, cancellation)

    def _discover(self, target_name, generation, cancellation):
        settings = self.settings.discovery
        try:
            found = self.resolver.discover(target_name, settings.service_type, settings.timeout, cancellation)
        except DiscoveryCancelled:
            self.logger.debug("discovery of %s was superseded" % target_name)
            return False
        except DiscoveryError as e:
            self.logger.info("device %s not found: %s" % (target_name, e))
            return self._discovery_failed(generation)
        except Exception as e:
            self.logger.exception("discovery of %s failed: %s" % (target_name, e))
            return self._discovery_failed(generation)

        if not self._adopt(found, generation):
            self.logger.debug("discarding stale discovery of %s" % target_name)
            return False
        return self._connect(generation)

    def _discovery_failed(self, generation):
        with self._changing():
            if generation != self._generation:
                return False
            self._discovery = None
            self._set_flags(device_found=False, active_device=False)
            self._end_session()
        return False

    def _adopt(self, found: DiscoveryResult, generation):
        """ makes the discovered device the current device, dropping any previous connection """
        with self._changing():
            if generation != self._generation:
                return False
            self._discovery = None
            self._drop_connection()
            self.device.overwrite(found)
            self._set_flags(device_found=True, active_device=True, active_connection=False)
            self._pending.append((None, DeviceChangedEvent(self, found)))
        return True

    # connection ----------------------------------------------------------

    def connect(self):
        """
        Connects to the current device.
        Nothing is opened when the device's application is not running; marker tracking is told to
        start over instead.
        :return: True if the connection was established.
        """
        with self._lock:
            generation = self._generation
        return self._connect(generation)

    def _connect(self, generation):
        """ connects unless a later discovery has started in the meantime """
        settings = self.settings.connection
        if not self.device.wait_ready(settings.ready_timeout):
            self.logger.warning("device was not ready after %ss" % settings.ready_timeout)
            return False

        with self._changing():
            if generation != self._generation:
                self.logger.debug("not connecting, a later discovery has started")
                return False
            device = self.device.snapshot()
            if not device.running:
                self.logger.info("%s is not running the application" % device.name)
                self._end_session()
                return False
            self._drop_connection()
            connector = self._connector = self.connector_factory(device.address, device.port)

        try:
            wait_open(connector, settings.timeout)
        except ConnectionTimeoutError as e:
            self.logger.warning("connection timed out: %s" % e)
            return self._connect_failed(connector, generation)
        except ConnectorError as e:
            self.logger.warning("unable to connect to %s:%s: %s" % (device.address, device.port, e))
            return self._connect_failed(connector, generation)

        with self._changing():
            stale = connector is not self._connector or generation != self._generation
            if stale and connector is self._connector:
                self._drop_connection()
            if not stale:
                self._set_flags(active_connection=True, timed_out=False)
                loop = self._receive_loop = ReceiveLoop(self, connector, self.logger)
        if stale:
            connector.close()
            return False
        self.logger.info("connected to %s at %s:%s" % (device.name, device.address, device.port))
        loop.start()
        with self._lock:
            # disconnect() may have run before the loop started
            return connector is self._connector and self._flags.active_connection

    def _connect_failed(self, connector, generation):
        with self._changing():
            if connector is self._connector:
                if generation == self._generation:
                    self._set_flags(timed_out=True)
                    self._teardown()
                    return False
                self._drop_connection()
        connector.close()
        return False

    def _drop_connection(self):
        """ closes the current connection without touching the flags. Lock must be held. """
        connector, self._connector = self._connector, None
        loop, self._receive_loop = self._receive_loop, None
        if loop is not None:
            loop.stop(join=False)
        if connector is not None:
            connector.close()

    def _teardown(self):
        """ the body of disconnect(). Lock must be held. """
        self._end_session()
        self.device.reset()
        self._drop_connection()
        self._set_flags(active_connection=False, active_device=False)

    def disconnect(self):
        """
        Ends the session: resets the device, closes the connection and tells marker tracking
        to start over. Can be called any number of times, from any thread.
        """
        with self._changing():
            self._teardown()

    def _teardown_connection(self, connector):
        """ disconnects if the connector is still the current one. Stale connectors are just closed. """
        with self._changing():
            current = connector is self._connector
            if current:
                self._teardown()
        if not current:
            connector.close()

    def _transport_lost(self, connector, error):
        if error is not None:
            self.logger.warning("connection to %s failed: %s" % (connector.endpoint, error))
        else:
            self.logger.info("connection to %s ended" % (connector.endpoint,))
        self._teardown_connection(connector)

    def _peer_closed(self, connector, interrupted: threading.Event):
        """
        The peer signalled it is closing. The closed status is shown for the grace period before
        the session is torn down. Stopping the receive loop cuts the grace period short.
        """
        with self._changing():
            if connector is not self._connector:
                return
            self.logger.info("%s closed the connection" % (connector.endpoint,))
            self._set_flags(connection_closed=True)
        interrupted.wait(self.settings.connection.close_grace_period)
        with self._changing():
            current = connector is self._connector
            if current:
                # a single status refresh, so the active status doesn't reappear on the way down
                self._flags.update(connection_closed=False)
                self._teardown()
            else:
                self._set_flags(connection_closed=False)
        if not current:
            connector.close()

    # updates -------------------------------------------------------------

    def send_update(self, key, value):
        """
        Sends a service value to the device as KEY=value. Nothing is sent without an active connection.
        Never raises; failures are logged.
        :return: True if the update was written to the connection.
        """
        with self._lock:
            connector = self._connector if self._flags.active_connection else None
        if connector is None:
            self.logger.debug("no active connection, dropping update for %s" % key)
            return False
        try:
            data = encode_update(key, value)
        except UpdateFormatError as e:
            self.logger.warning("not sending update: %s" % e)
            return False
        try:
            connector.conduit.send(data)
        except (ConnectorError, TransportError) as e:
            self.logger.warning("sending update for %s failed: %s" % (key, e))
            self._teardown_connection(connector)
            return False
        self.logger.debug("sent %r" % data)
        return True

    def close(self):
        """ Cancels discovery, disconnects and releases the worker threads and the resolver. """
        with self._lock:
            discovery, self._discovery = self._discovery, None
            self._generation += 1
        if discovery is not None:
            discovery.cancel()
        self.disconnect()
        self._executor.shutdown(wait=False)
        self.resolver.close()
