"""
The update line protocol. One update per line, UTF-8 encoded:

    <KEY>=<value>\\n

The key is the uppercase service kind. Nothing is sent back other than a closing message, which
the client treats as the peer closing the connection.
"""
from arios import AriosError
from arios.services import ServiceKind, is_valid_value

encoding = 'utf-8'
separator = '='
terminator = '\n'


class UpdateFormatError(AriosError, ValueError):
    """ An update could not be encoded or a received line is not a valid update. """


def encode_update(key, value) -> bytes:
    """
    Encodes a single update line.
    >>> encode_update('toggle', 'true')
    b'TOGGLE=true\\n'
    """
    key = str(key)
    value = str(value)
    if not key or separator in key:
        raise UpdateFormatError("invalid update key %r" % key)
    if '\n' in key + value or '\r' in key + value:
        raise UpdateFormatError("update for %s contains a line break" % key)
    return (key.upper() + separator + value + terminator).encode(encoding)


def split_update(line):
    """
    Splits a line into key and value at the first separator.
    :param line: the line, as bytes or text. A trailing line break is removed.
    :return: (key, value)
    """
    if isinstance(line, bytes):
        try:
            line = line.decode(encoding)
        except UnicodeDecodeError as e:
            raise UpdateFormatError("update is not %s: %r" % (encoding, line)) from e
    line = line.rstrip('\r\n')
    key, sep, value = line.partition(separator)
    if not sep or not key:
        raise UpdateFormatError("update doesn't conform to KEY=value: %r" % line)
    return key, value


def decode_update(line):
    """
    Decodes and validates an update line.
    :return: a tuple of (ServiceKind, value)
    :raises UpdateFormatError: the line is malformed, names an unknown service kind, or the
        value is not acceptable for the kind.
    """
    key, value = split_update(line)
    kind = ServiceKind.from_wire_key(key)
    if kind is None:
        raise UpdateFormatError("no service kind matches %r" % key)
    if not is_valid_value(kind, value):
        raise UpdateFormatError("invalid value for %s: %r" % (key, value))
    return kind, value
