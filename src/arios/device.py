import ipaddress
import threading

from arios.support.mixins import CommonEqualityMixin, StringerMixin

# the port of a device that has not been resolved
UNRESOLVED_PORT = -1


def parse_ip(address):
    """
    The typed form of a numeric address, or None when the address is empty or not numeric.
    >>> parse_ip('192.0.2.5')
    IPv4Address('192.0.2.5')
    >>> parse_ip('') is None
    True
    """
    if not address:
        return None
    try:
        return ipaddress.ip_address(address)
    except ValueError:
        return None


class DiscoveryResult(CommonEqualityMixin, StringerMixin):
    """
    A peer as resolved from its advertisement.
    Instances are treated as immutable once constructed.
    """
    def __init__(self, name, address, port, services=None, running=False):
        """
        :param name: the advertised instance name.
        :param address: the numeric address as a string.
        :param port: the port, UNRESOLVED_PORT if not known.
        :param services: mapping of service key to the current text value.
        :param running: True if the peer reports its application as running.
        """
        self.name = name
        self.address = address
        self.port = port
        self.services = dict(services or {})
        self.running = running

    @property
    def ip(self):
        return parse_ip(self.address)

    @property
    def resolved(self):
        return self.port is not None and self.port != UNRESOLVED_PORT and self.ip is not None

    def service_keys(self):
        return frozenset(self.services)

    def copy(self):
        return DiscoveryResult(self.name, self.address, self.port, self.services, self.running)

    @staticmethod
    def empty():
        """ the "no device" value """
        return DiscoveryResult('', '', UNRESOLVED_PORT, {}, False)


class Device:
    """
    The peer a session is currently working with.

    The fields are held in a single DiscoveryResult that is replaced as a whole by overwrite().
    Readers either take a snapshot() or read a single property; they never see a mix of an old and a new value.
    """

    def __init__(self):
        self._condition = threading.Condition()
        self._current = DiscoveryResult.empty()
        self._ready = False

    def overwrite(self, other: DiscoveryResult):
        """
        Replaces all fields with those from other and marks this device ready.
        """
        replacement = other.copy()
        with self._condition:
            self._current = replacement
            self._ready = True
            self._condition.notify_all()

    def reset(self):
        """
        Replaces the fields with the empty "no device" value. The device is ready afterwards;
        an empty device is safe to read.
        """
        self.overwrite(DiscoveryResult.empty())

    def snapshot(self) -> DiscoveryResult:
        with self._condition:
            return self._current.copy()

    def wait_ready(self, timeout=None):
        """
        Waits until the device has been populated.
        :return: True if the device is ready, False if the timeout elapsed first.
        """
        with self._condition:
            return self._condition.wait_for(lambda: self._ready, timeout)

    @property
    def ready(self):
        with self._condition:
            return self._ready

    def _field(self, name):
        with self._condition:
            return getattr(self._current, name)

    @property
    def name(self):
        return self._field('name')

    @property
    def address(self):
        return self._field('address')

    @property
    def ip(self):
        return self._field('ip')

    @property
    def port(self):
        return self._field('port')

    @property
    def services(self):
        return dict(self._field('services'))

    @property
    def running(self):
        return self._field('running')

    def service_keys(self):
        with self._condition:
            return self._current.service_keys()

    def __repr__(self):
        return 'Device(%r, ready=%s)' % (self.snapshot(), self.ready)
