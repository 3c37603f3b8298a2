""" Exceptions raised by the fake server components.
"""


class NoamTestError(Exception):
    """Base class for all fake server errors."""


class EncodingError(NoamTestError):
    """A payload cannot be represented as a frame."""


class FramingError(NoamTestError):
    """Bytes on the wire do not form a valid frame."""


class TruncatedFrame(FramingError):
    """The stream ended part way through a frame."""


class ProtocolViolation(NoamTestError):
    """A lemma did not follow the registration protocol."""


class UnexpectedTag(ProtocolViolation):
    """The first message on a connection was not a registration."""

    def __init__(self, tag):
        self.tag = tag
        ProtocolViolation.__init__(self, 'expected a register message, got %r' % (tag,))


class VersionMismatch(ProtocolViolation):
    """The lemma speaks a different protocol version."""

    def __init__(self, theirs, ours):
        self.theirs = theirs
        self.ours = ours
        ProtocolViolation.__init__(self, 'lemma is protocol %r, expected %r' % (theirs, ours))


class MalformedRegistration(ProtocolViolation):
    """The registration message does not have the expected shape."""


class ConnectFailure(NoamTestError):
    """The responder connection back to a lemma could not be opened."""


class WriteFailure(NoamTestError):
    """A message could not be written to a lemma."""


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
