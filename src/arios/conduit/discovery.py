"""
    Resource discovery for remote servers.
    Advertisements are turned into events as they appear and disappear. For example, when a matching
    service is announced on the network, a ResourceAvailableEvent is posted with its name and type.
"""
from arios import AriosError
from arios.support.mixins import CommonEqualityMixin


class DiscoveryError(AriosError):
    """ Discovery did not produce a device. """


class DiscoveryNotFound(DiscoveryError):
    """ No advertisement with the requested name was seen. """


class DiscoveryTimeout(DiscoveryError):
    """ An advertisement with the requested name was seen, but could not be resolved in time. """


class DiscoveryCancelled(DiscoveryError):
    """ The discovery was cancelled by the caller, typically because a newer discovery replaced it. """


class ResourceEvent(CommonEqualityMixin):
    """ Notification about a resource. """
    def __init__(self, source, key, resource):
        """
        :param source   The object that posted this event
        :param key An identifier for the resource, such as the advertised service name.
        :param resource The resource itself, which may have instance-specific details beyond what is available in
            key.
        """
        self.source = source
        self.key = key
        self.resource = resource


class ResourceAvailableEvent(ResourceEvent):
    """ Signifies that a resource is available. """


class ResourceUnavailableEvent(ResourceEvent):
    """ Signifies that a resource has become unavailable. """
