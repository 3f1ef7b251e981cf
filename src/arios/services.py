"""
The kinds of service element a peer can offer, and how their values are written as text.

Each kind appears twice on the network: as a lowercase TXT record key in the advertisement
(``toggle=false``) and as an uppercase key in update lines (``TOGGLE=true``).
"""
import logging
import string
from enum import Enum

logger = logging.getLogger(__name__)

# the reserved TXT record that tells whether the peer application is running
RUNNING_KEY = 'running'


class ServiceCodec:
    """ Converts between the text form of a service value and a python value. """

    def decode(self, text):
        return text

    def encode(self, value):
        return str(value)

    def is_valid(self, text) -> bool:
        return True


class BooleanCodec(ServiceCodec):
    """
    >>> BooleanCodec().decode('true')
    True
    """
    def decode(self, text):
        if not self.is_valid(text):
            raise ValueError("not a boolean value: %r" % text)
        return text == 'true'

    def encode(self, value):
        return 'true' if value else 'false'

    def is_valid(self, text):
        return text in ('true', 'false')


class ColorCodec(ServiceCodec):
    """ colors are six hex digits, RRGGBB.

    >>> ColorCodec().decode('FF8000')
    (255, 128, 0)
    >>> ColorCodec().encode((255, 128, 0))
    'FF8000'
    """
    def decode(self, text):
        if not self.is_valid(text):
            raise ValueError("not a RRGGBB color: %r" % text)
        return tuple(int(text[i:i + 2], 16) for i in range(0, 6, 2))

    def encode(self, value):
        return ''.join('%02X' % component for component in value)

    def is_valid(self, text):
        return len(text) == 6 and all(c in string.hexdigits for c in text)


class TextCodec(ServiceCodec):
    """ free text """


class ServiceKind(Enum):
    COLORPICKER = 'colorpicker'
    TOGGLE = 'toggle'
    TEXTFIELD = 'textfield'
    CHECKBOX = 'checkbox'

    @property
    def record_key(self):
        """ the key used in the advertisement's TXT records """
        return self.value

    @property
    def wire_key(self):
        """ the key used in update lines """
        return self.value.upper()

    @property
    def codec(self) -> ServiceCodec:
        return _codecs[self]

    @classmethod
    def from_record_key(cls, key):
        """ the kind for a TXT record key, or None when the key is not a service kind. Case-sensitive. """
        return _by_record_key.get(key)

    @classmethod
    def from_wire_key(cls, key):
        """ the kind for an update line key, or None when unknown. Case-sensitive. """
        return _by_wire_key.get(key)


_codecs = {
    ServiceKind.COLORPICKER: ColorCodec(),
    ServiceKind.TOGGLE: BooleanCodec(),
    ServiceKind.TEXTFIELD: TextCodec(),
    ServiceKind.CHECKBOX: BooleanCodec(),
}

_by_record_key = {kind.record_key: kind for kind in ServiceKind}
_by_wire_key = {kind.wire_key: kind for kind in ServiceKind}

# the service keys a Device accepts from an advertisement
ALLOWED_SERVICE_KEYS = frozenset(_by_record_key)

# initial values a provider advertises for each kind
DEFAULT_VALUES = {
    ServiceKind.TOGGLE: 'false',
    ServiceKind.COLORPICKER: 'FFFFFF',
    ServiceKind.TEXTFIELD: 'empty',
    ServiceKind.CHECKBOX: 'false',
}


def contains_markup(text):
    """ values are rejected when they look like they carry markup """
    return '<' in text and '>' in text


def is_valid_value(kind: ServiceKind, text) -> bool:
    """
    Determines if a text value is acceptable for the given kind.
    >>> is_valid_value(ServiceKind.TOGGLE, 'maybe')
    False
    >>> is_valid_value(ServiceKind.TEXTFIELD, '<b>hi</b>')
    False
    """
    return not contains_markup(text) and kind.codec.is_valid(text)


def parse_running(text):
    """ the running record is true for any capitalization of 'true' """
    return text is not None and text.lower() == 'true'


def parse_records(records: dict):
    """
    Extracts the service values and the running flag from the decoded TXT records of an advertisement.
    Keys that are not service kinds (and not 'running') are ignored.
    :param records: a mapping of record key to text value. A value may be None for a key without a value.
    :return: a tuple of (services, running) where services maps the service key to its text value.
    """
    services = {}
    running = False
    for key, value in records.items():
        if key == RUNNING_KEY:
            running = parse_running(value)
        elif key in ALLOWED_SERVICE_KEYS:
            services[key] = value if value is not None else ''
        else:
            logger.debug("ignoring record %s" % key)
    return services, running
