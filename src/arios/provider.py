"""
The peer side: advertises a named set of services on the network and applies the updates
that a connected session sends.

Run from the command line with ``arios-provider``.
"""
import argparse
import logging
import socket
import sys
import threading

from zeroconf import ServiceInfo, Zeroconf

from arios.conduit.base import TransportError
from arios.conduit.server_discovery import qualify_service_type
from arios.conduit.socket_conduit import SocketConduit
from arios.protocol.updates import UpdateFormatError, decode_update, encoding, terminator
from arios.services import DEFAULT_VALUES, RUNNING_KEY, ServiceKind
from arios.settings import ProviderSettings, load_settings
from arios.support.async_loop import AsyncLoop

logger = logging.getLogger(__name__)

# how long accept() waits before the serving loop checks whether it should stop
accept_timeout = 0.5


def local_address():
    """
    The address of the interface used for outbound traffic. No packets are sent.
    Falls back to the loopback address when there is no route.
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def split_lines(buffer: bytes):
    """
    Splits complete lines from the front of a buffer.
    >>> split_lines(b'A=1\\nB=2\\nC')
    ([b'A=1', b'B=2'], b'C')
    """
    lines = []
    while b'\n' in buffer:
        line, _, buffer = buffer.partition(b'\n')
        lines.append(line)
    return lines, buffer


class ClientLoop(AsyncLoop):
    """ Accepts clients one at a time and feeds their lines to the provider. """

    def __init__(self, provider, server: socket.socket, log=logger):
        super().__init__(name="provider %s" % provider.name, log=log)
        self.provider = provider
        self.server = server

    def loop(self):
        try:
            client, address = self.server.accept()
        except socket.timeout:
            return
        except OSError:
            if self.running():
                raise
            return
        client.settimeout(None)
        self.logger.info("client connected from %s:%s" % address[:2])
        conduit = SocketConduit(client)
        if not self.provider._attach(conduit):
            conduit.close()
            return
        try:
            self._serve(conduit)
        finally:
            self.provider._detach(conduit)
            conduit.close()
            self.logger.info("client %s:%s disconnected" % address[:2])

    def _serve(self, conduit):
        pending = b''
        try:
            for chunk in conduit.chunks():
                lines, pending = split_lines(pending + chunk)
                for line in lines:
                    self.provider.handle_line(line)
        except TransportError as e:
            self.logger.warning("client connection failed: %s" % e)


class ServiceProvider:
    """
    Advertises a service instance with one TXT record per offered service, plus the running record,
    and accepts a single client at a time on a TCP port.

    Each valid update line changes the service's value and re-publishes the advertisement.
    Invalid lines are logged and ignored.
    """

    def __init__(self, name, services=None, port=0, service_type=None, closing_message=None,
                 zeroconf=None, address=None, log=logger):
        """
        :param name: the instance name to advertise
        :param services: iterable of (ServiceKind, initial value) pairs, or of ServiceKinds which then
            start with their default value.
        :param port: the TCP port to listen on. 0 picks a free port.
        :param service_type: the service type to advertise, bare or fully qualified.
        :param closing_message: sent to a connected client when the provider stops
        :param zeroconf: the Zeroconf instance to register with. When None, one is created by start()
            and closed by stop().
        :param address: the address to advertise. Defaults to the address of the outbound interface.
        """
        defaults = ProviderSettings()
        self.name = name
        self.values = {}
        for service in services or ():
            kind, value = service if isinstance(service, tuple) else (service, DEFAULT_VALUES[service])
            self.values[kind] = value
        self.requested_port = port
        self.service_type = qualify_service_type(service_type or defaults.service_type)
        self.closing_message = defaults.closing_message if closing_message is None else closing_message
        self.address = address
        self.logger = log
        self.running = False
        self._zeroconf = zeroconf
        self._owns_zeroconf = zeroconf is None
        self._lock = threading.RLock()
        self._server = None
        self._client = None
        self._loop = None
        self._info = None

    @property
    def port(self):
        """ the port being listened on, or None when not started """
        with self._lock:
            return self._server.getsockname()[1] if self._server else None

    @property
    def service_name(self):
        return self.name + '.' + self.service_type

    def records(self):
        """ the TXT records for the current values """
        records = {RUNNING_KEY: 'true' if self.running else 'false'}
        for kind, value in self.values.items():
            records[kind.record_key] = value
        return records

    def _service_info(self):
        return ServiceInfo(self.service_type, self.service_name, port=self.port,
                           properties=self.records(), parsed_addresses=[self.address])

    def start(self):
        """ Listens for clients and registers the advertisement. """
        with self._lock:
            if self._server is not None:
                return
            server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server.bind(('', self.requested_port))
            server.listen(1)
            server.settimeout(accept_timeout)
            self._server = server
            self.address = self.address or local_address()
            self.running = True
            if self._zeroconf is None:
                self._zeroconf = Zeroconf()
            self._info = self._service_info()
            self._loop = ClientLoop(self, server, self.logger)
        self._zeroconf.register_service(self._info)
        self._loop.start()
        self.logger.info("providing %s at %s:%s with %s" % (self.service_name, self.address, self.port,
                                                            ', '.join(k.record_key for k in self.values)))

    def _attach(self, conduit):
        with self._lock:
            if not self.running:
                return False
            self._client = conduit
            return True

    def _detach(self, conduit):
        with self._lock:
            if self._client is conduit:
                self._client = None

    def handle_line(self, line):
        """
        Applies one update line.
        :return: True if the update was valid and applied.
        """
        try:
            kind, value = decode_update(line)
        except UpdateFormatError as e:
            self.logger.warning("ignoring update: %s" % e)
            return False
        if kind not in self.values:
            self.logger.warning("ignoring update for %s, which is not offered" % kind.record_key)
            return False
        with self._lock:
            self.values[kind] = value
        self.logger.info("%s set to %s" % (kind.record_key, value))
        self.publish()
        return True

    def publish(self):
        """ re-publishes the advertisement with the current records """
        with self._lock:
            if self._info is None:
                return
            self._info = self._service_info()
            info = self._info
        self._zeroconf.update_service(info)

    def stop(self):
        """
        Advertises that the application stopped, tells a connected client the connection is closing,
        and releases the sockets and the advertisement.
        """
        with self._lock:
            if self._server is None:
                return
            self.running = False
            client, self._client = self._client, None
            server, self._server = self._server, None
            loop, self._loop = self._loop, None
            info, self._info = self._info, None
        # the loop must see it is stopping before the server socket goes away under accept()
        loop.stop_event.set()
        self._zeroconf.update_service(ServiceInfo(info.type, info.name, port=info.port,
                                                  properties=self.records(), parsed_addresses=[self.address]))
        if client is not None:
            try:
                client.send((self.closing_message + terminator).encode(encoding))
            except TransportError as e:
                self.logger.debug("could not send closing message: %s" % e)
            client.close()
        server.close()
        loop.stop(timeout=accept_timeout * 4)
        self._zeroconf.unregister_service(info)
        if self._owns_zeroconf:
            self._zeroconf.close()
            self._zeroconf = None
        self.logger.info("stopped providing %s" % self.service_name)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='arios-provider',
                                     description="Advertises services for ARIOS clients and applies their updates.")
    parser.add_argument('name', help="the name to advertise, matching the client's reference marker")
    parser.add_argument('--port', type=int, default=None, help="the port to listen on. Defaults to a free port.")
    parser.add_argument('-b', '--button', dest='kinds', action='append_const', const=ServiceKind.TOGGLE,
                        help="a simple button element")
    parser.add_argument('-p', '--colorpicker', dest='kinds', action='append_const', const=ServiceKind.COLORPICKER,
                        help="a colorpicker element")
    parser.add_argument('-t', '--textfield', dest='kinds', action='append_const', const=ServiceKind.TEXTFIELD,
                        help="a textfield element")
    parser.add_argument('-c', '--checkbox', dest='kinds', action='append_const', const=ServiceKind.CHECKBOX,
                        help="a checkbox element")
    parser.add_argument('--service-type', default=None, help="the service type to advertise")
    parser.add_argument('--config', default=None, help="a directory holding arios.cfg overrides")
    parser.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    args = parser.parse_args(argv)
    if not args.kinds:
        parser.error("at least one service is required")
    return args


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings(args.config).provider
    provider = ServiceProvider(args.name, args.kinds,
                               port=settings.port if args.port is None else args.port,
                               service_type=args.service_type or settings.service_type,
                               closing_message=settings.closing_message)
    provider.start()
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        logger.info("interrupted")
    finally:
        provider.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main(sys.argv[1:]))
