""" Encode and decode frames on the wire. A frame is a six digit, zero-padded
    decimal length followed by exactly that many bytes of payload. There is
    no delimiter and no escaping; the payload is normally UTF-8 JSON, but
    nothing here cares what it contains.
"""

from . import errors
from . import json

width = 6
maximum = 10 ** width - 1


def encode(payload):
    """ Return the frame for the provided *payload*, which can be bytes or
        a string; strings are UTF-8 encoded. Raises
        :class:`noamtest.errors.EncodingError` if the payload is too long
        to be described by the length prefix.
    """

    if isinstance(payload, str):
        payload = payload.encode('utf-8')
    elif isinstance(payload, (bytes, bytearray, memoryview)):
        payload = bytes(payload)
    else:
        raise TypeError('payload must be bytes or str, not ' + type(payload).__name__)

    length = len(payload)
    if length > maximum:
        raise errors.EncodingError('payload of %d bytes exceeds the %d byte limit' % (length, maximum))

    prefix = '%0*d' % (width, length)
    return prefix.encode() + payload


def frame(message):
    """ JSON-encode *message* and return the resulting frame.
    """

    try:
        payload = json.dumps(message)
    except (TypeError, json.EncodeError) as e:
        raise errors.EncodingError(str(e)) from e

    return encode(payload)


def decode(sock):
    """ Read one frame from *sock* and return its payload as bytes. This
        blocks until the full frame has arrived.

        None is returned if the socket reports end-of-stream before any
        part of the frame is read; this happens when the peer closes its
        side, and also when the socket is shut down locally to interrupt
        a blocked read. End-of-stream part way through a frame raises
        :class:`noamtest.errors.TruncatedFrame`.
    """

    prefix = _read(sock, width)
    if prefix is None:
        return None

    if prefix.isdigit():
        length = int(prefix)
    else:
        raise errors.FramingError('invalid length prefix: %r' % (prefix,))

    if length == 0:
        return b''

    payload = _read(sock, length)
    if payload is None:
        raise errors.TruncatedFrame('stream ended after the length prefix')

    return payload


def _read(sock, count):
    """ Read exactly *count* bytes from *sock*. Returns None if the stream
        ends before the first byte arrives.
    """

    chunks = list()
    remaining = count

    while remaining > 0:
        chunk = sock.recv(remaining)

        if chunk == b'':
            if remaining == count:
                return None
            raise errors.TruncatedFrame('expected %d bytes, stream ended after %d' % (count, count - remaining))

        chunks.append(chunk)
        remaining -= len(chunk)

    return b''.join(chunks)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
