"""
Events fired by a SessionManager on its `events` source.
"""
from arios.support.mixins import CommonEqualityMixin, StringerMixin


class SessionEvent(CommonEqualityMixin, StringerMixin):
    """ base class for session events. """
    def __init__(self, session):
        self.session = session


class StatusChangedEvent(SessionEvent):
    """ The visible status, or its text, changed. """
    def __init__(self, session, status, text):
        super().__init__(session)
        self.status = status
        self.text = text


class SessionEndedEvent(SessionEvent):
    """
    The session has no usable device any more: discovery failed, the peer's application
    isn't running, or the connection was torn down. Marker tracking should restart.
    """


class DeviceChangedEvent(SessionEvent):
    """ A newly discovered device was adopted. """
    def __init__(self, session, device):
        super().__init__(session)
        self.device = device
