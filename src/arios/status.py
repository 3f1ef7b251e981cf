"""
Derives the single status shown to the user from the session's connection flags.
"""
from enum import Enum

from arios.support.mixins import CommonEqualityMixin, StringerMixin


class Status(Enum):
    NONE = 'none'
    NO_DEVICE_FOUND = 'no_device_found'
    MISSING_APPLICATION = 'missing_application'    # found the device but its application isn't running
    CONNECTION_TIMEOUT = 'connection_timeout'
    CONNECTION_ACTIVE = 'connection_active'
    CONNECTION_CLOSED = 'connection_closed'


class ConnectionFlags(CommonEqualityMixin, StringerMixin):
    """
    The independent booleans a session tracks. Several may be set at once while the
    session moves between states.
    """
    def __init__(self, device_found=False, active_device=False, active_connection=False,
                 connection_closed=False, timed_out=False):
        self.device_found = device_found
        self.active_device = active_device
        self.active_connection = active_connection
        self.connection_closed = connection_closed
        self.timed_out = timed_out

    def update(self, **changes):
        for name, value in changes.items():
            if not hasattr(self, name):
                raise AttributeError("unknown connection flag %s" % name)
            setattr(self, name, bool(value))

    def copy(self):
        return ConnectionFlags(**self.__dict__)


def derive_status(flags: ConnectionFlags, running) -> Status:
    """
    Maps the flags to a status. The first matching rule wins; a device that was found without its
    application running is reported ahead of everything else.
    :param flags: the session's connection flags
    :param running: the running flag of the current device
    """
    if not running and flags.active_device:
        return Status.MISSING_APPLICATION
    if not flags.device_found:
        return Status.NO_DEVICE_FOUND
    if flags.timed_out:
        return Status.CONNECTION_TIMEOUT
    if flags.connection_closed:
        return Status.CONNECTION_CLOSED
    if flags.active_device and flags.active_connection:
        return Status.CONNECTION_ACTIVE
    return Status.NONE


_texts = {
    Status.NONE: "",
    Status.NO_DEVICE_FOUND: "No matching device found!",
    Status.MISSING_APPLICATION: "Found device but it's not running the desired application!",
    Status.CONNECTION_TIMEOUT: "Connection timeout!",
    Status.CONNECTION_ACTIVE: "Name: {name} | IP: {address} | Port: {port} | Service-Count: {count}",
    Status.CONNECTION_CLOSED: "Connection was closed!",
}


def status_text(status: Status, device=None):
    """
    The text shown for a status. The active connection text describes the device.
    :param device: a DiscoveryResult for the current device. May be None.
    """
    template = _texts[status]
    if status is not Status.CONNECTION_ACTIVE:
        return template
    if device is None:
        return template.format(name='none', address='', port=-1, count=0)
    return template.format(name=device.name, address=device.address, port=device.port,
                           count=len(device.services))
