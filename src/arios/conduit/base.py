from abc import abstractmethod

from arios import AriosError


class TransportError(AriosError, IOError):
    """ Sending or receiving over a conduit failed. """


class Conduit:
    """
    A conduit allows two-way communication of bytes with a peer.
    """

    @property
    @abstractmethod
    def target(self):
        """ the underlying channel, e.g. a socket """
        raise NotImplementedError

    @property
    @abstractmethod
    def open(self) -> bool:
        """ determines if this conduit is open. When open, data can be sent and received. """
        raise NotImplementedError

    @abstractmethod
    def send(self, data: bytes):
        """
        Sends all the given bytes.
        Raises TransportError if the data cannot be sent.
        """
        raise NotImplementedError

    @abstractmethod
    def chunks(self):
        """
        Iterates over the byte chunks received from the peer, as they arrive.
        The iteration ends when the conduit is closed or the peer ends the stream.
        Raises TransportError if receiving fails while the conduit is open.
        """
        raise NotImplementedError

    @abstractmethod
    def close(self):
        """
        Closes the conduit. Closing an already closed conduit has no effect.
        """
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
