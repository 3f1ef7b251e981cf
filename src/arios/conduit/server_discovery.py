import logging
import threading
import time
from queue import Empty, Queue

from zeroconf import IPVersion, ServiceBrowser, Zeroconf

from arios.conduit.discovery import DiscoveryCancelled, DiscoveryNotFound, DiscoveryTimeout, \
    ResourceAvailableEvent, ResourceUnavailableEvent
from arios.device import DiscoveryResult
from arios.services import parse_records
from arios.support.retry_strategy import StagedRetryStrategy

logger = logging.getLogger(__name__)

# the first resolve attempt and the single retry, in seconds
default_resolve_stages = (3.0, 10.0)


def qualify_service_type(service_type):
    """
    Expands a bare service name to a fully qualified DNS-SD type. Qualified types are returned unchanged.
    >>> qualify_service_type("http")
    '_http._tcp.local.'
    >>> qualify_service_type("_http._tcp.local.")
    '_http._tcp.local.'
    >>> qualify_service_type("_http._tcp.")
    '_http._tcp.local.'
    """
    if not service_type.startswith('_'):
        return "_" + service_type + "._tcp.local."
    if not service_type.endswith('.'):
        service_type += '.'
    if not service_type.endswith('.local.'):
        service_type += 'local.'
    return service_type


def instance_name(name, service_type):
    """
    The instance part of a fully qualified service name.
    >>> instance_name("lamp1._http._tcp.local.", "_http._tcp.local.")
    'lamp1'
    """
    suffix = '.' + service_type
    return name[:-len(suffix)] if name.endswith(suffix) else name


def decode_records(properties):
    """ converts the raw TXT records of a ServiceInfo to text """
    records = {}
    for key, value in (properties or {}).items():
        if isinstance(key, bytes):
            key = key.decode('utf-8', 'replace')
        if isinstance(value, bytes):
            value = value.decode('utf-8', 'replace')
        records[key] = value
    return records


def result_for_service(info, service_type):
    """
    Constructs the DiscoveryResult from a resolved ServiceInfo.
    IPv4 addresses are preferred. Returns None when the info has no port or no address.
    """
    if info is None or info.port is None or info.port < 0:
        return None
    addresses = info.parsed_addresses(IPVersion.V4Only) or info.parsed_addresses()
    if not addresses:
        return None
    services, running = parse_records(decode_records(info.properties))
    return DiscoveryResult(instance_name(info.name, service_type), addresses[0], info.port, services, running)


class Cancellation:
    """
    A flag that is set once, by cancel(). Callbacks registered with on_cancel() are called on the
    cancelling thread, so that threads waiting on other primitives can be woken.
    """
    def __init__(self):
        self._event = threading.Event()
        self._callbacks = []
        self._lock = threading.Lock()

    def cancel(self):
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def is_set(self):
        return self._event.is_set()

    def wait(self, timeout=None):
        return self._event.wait(timeout)

    def on_cancel(self, callback):
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove(self, callback):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)


class TargetListener:
    """
    Listens to a zeroconf service browser for one instance name.
    To keep resolution off the browser's thread, this only queues events for the matching name.
    The discovering thread takes them from the queue.
    """
    def __init__(self, target_name, service_type, cancelled: Cancellation, log=logger):
        self.target_name = target_name
        self.service_type = service_type
        self.cancelled = cancelled
        self.event_queue = Queue()
        self.logger = log

    def _matches(self, type_, name):
        return instance_name(name, type_) == self.target_name

    def _publish(self, event):
        self.event_queue.put(event)

    def add_service(self, zeroconf, type_, name):
        """ notification from the service browser that a service has been added """
        if self._matches(type_, name):
            self.logger.info("service available: %s" % name)
            self._publish(ResourceAvailableEvent(self, name, type_))
        else:
            self.logger.debug("ignoring service %s" % name)

    def update_service(self, zeroconf, type_, name):
        """ the records of a service changed. The latest records are fetched when it is resolved. """
        if self._matches(type_, name):
            self._publish(ResourceAvailableEvent(self, name, type_))

    def remove_service(self, zeroconf, type_, name):
        """ notification from the service browser that a service has been removed """
        if self._matches(type_, name):
            self.logger.info("service unavailable: %s" % name)
            self._publish(ResourceUnavailableEvent(self, name, type_))

    def wake(self):
        """ unblocks a thread waiting for the next event, e.g. after cancellation """
        self._publish(None)

    def next_event(self, timeout):
        """
        Waits for events and returns the latest one. Events that queued up together are collapsed,
        so an addition followed by a removal reads as the removal.
        :return: the latest event, or None if the timeout elapsed or the listener was woken.
        """
        try:
            event = self.event_queue.get(timeout=max(timeout, 0))
        except Empty:
            return None
        while event is not None:
            try:
                event = self.event_queue.get_nowait()
            except Empty:
                break
        return event


class ServiceResolver:
    """
    Uses zeroconf to find a TCP service by instance name and resolve its address, port and records.
    """
    def __init__(self, zeroconf=None, retry_strategy=None, log=logger):
        """
        :param zeroconf: the Zeroconf instance to use. When None, one is created on first use and
            closed by close().
        :param retry_strategy: the timeouts for resolving a matched advertisement. Defaults to 3s
            followed by one retry of 10s.
        """
        self._zeroconf = zeroconf
        self._owns_zeroconf = zeroconf is None
        self._lock = threading.Lock()
        self.retry_strategy = retry_strategy or StagedRetryStrategy(*default_resolve_stages)
        self.logger = log

    @property
    def zeroconf(self):
        with self._lock:
            if self._zeroconf is None:
                self._zeroconf = Zeroconf()
            return self._zeroconf

    def close(self):
        with self._lock:
            zeroconf = self._zeroconf
            if self._owns_zeroconf:
                self._zeroconf = None
        if zeroconf is not None and self._owns_zeroconf:
            zeroconf.close()

    def discover(self, target_name, service_type, timeout, cancelled: Cancellation=None) -> DiscoveryResult:
        """
        Browses for the named service and resolves it.
        :param target_name: the advertised instance name to look for. Compared case-sensitively.
        :param service_type: the service type, bare ("http") or fully qualified.
        :param timeout: the overall time allowed, in seconds.
        :param cancelled: a Cancellation the caller uses to abandon the discovery.
        :raises DiscoveryNotFound: no matching advertisement was seen in time.
        :raises DiscoveryTimeout: a matching advertisement was seen but not resolved in time.
        :raises DiscoveryCancelled: the discovery was cancelled.
        """
        cancelled = cancelled or Cancellation()
        fqn = qualify_service_type(service_type)
        deadline = time.monotonic() + timeout
        listener = TargetListener(target_name, fqn, cancelled, self.logger)
        self.logger.info("looking for %s in zeroconf services of type %s" % (target_name, fqn))
        zeroconf = self.zeroconf
        browser = ServiceBrowser(zeroconf, fqn, listener)
        cancelled.on_cancel(listener.wake)
        try:
            return self._await_match(zeroconf, listener, deadline)
        finally:
            cancelled.remove(listener.wake)
            browser.cancel()

    def _await_match(self, zeroconf, listener, deadline):
        seen = False
        while True:
            self._check_cancelled(listener)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            event = listener.next_event(remaining)
            if event is None:
                continue
            if isinstance(event, ResourceUnavailableEvent):
                continue
            seen = True
            result = self.resolve(zeroconf, event.resource, event.key, deadline, listener.cancelled)
            if result is not None:
                self.logger.info("resolved %s to %s:%s" % (listener.target_name, result.address, result.port))
                return result
        self._check_cancelled(listener)
        if seen:
            raise DiscoveryTimeout("could not resolve %s in time" % listener.target_name)
        raise DiscoveryNotFound("no service named %s" % listener.target_name)

    @staticmethod
    def _check_cancelled(listener):
        if listener.cancelled.is_set():
            raise DiscoveryCancelled("discovery of %s was cancelled" % listener.target_name)

    def resolve(self, zeroconf, service_type, name, deadline=None, cancelled=None):
        """
        Resolves an advertisement, retrying while it has no port.
        Each attempt is bounded by the retry strategy and by the deadline.
        :return: the DiscoveryResult, or None if the advertisement could not be resolved.
        """
        attempt = 0
        while cancelled is None or not cancelled.is_set():
            remaining = None if deadline is None else deadline - time.monotonic()
            timeout = self.retry_strategy(attempt, remaining)
            if timeout is None:
                break
            info = zeroconf.get_service_info(service_type, name, timeout=int(timeout * 1000))
            result = result_for_service(info, service_type)
            if result is not None:
                return result
            self.logger.debug("no port for %s after attempt %d" % (name, attempt + 1))
            attempt += 1
        return None
