""" The responder is the connection the fake server opens back to a lemma,
    using the port the lemma advertised when it registered. It is only
    used to push messages toward the lemma; nothing is ever read from it.
"""

import logging
import socket
import threading

from . import codec
from . import errors

logger = logging.getLogger(__name__)


class Responder:
    """ Connect to *host* on *port* immediately; a
        :class:`noamtest.errors.ConnectFailure` is raised if nothing is
        listening there. The optional *on_stop* callable is invoked exactly
        once, the first time :func:`stop` is called; the owning session uses
        it to shut itself down when its responder goes away.
    """

    def __init__(self, host, port, on_stop=None, timeout=None):

        self.host = host
        self.port = int(port)
        self.on_stop = on_stop
        self.closed = False

        self._lock = threading.Lock()
        self._state = threading.Lock()

        try:
            self.socket = socket.create_connection((host, self.port), timeout=timeout)
        except OSError as e:
            raise errors.ConnectFailure('cannot connect to %s:%d: %s' % (host, self.port, e)) from e

        # The timeout, if any, only applies to establishing the connection.
        self.socket.settimeout(None)

        logger.debug('responder connected to %s:%d', host, self.port)


    def send(self, message):
        """ JSON-encode *message*, frame it, and write the frame to the
            lemma.
        """

        self.send_frame(codec.frame(message))


    def send_frame(self, frame):
        """ Write an already-encoded *frame* in its entirety. Concurrent
            callers are serialized so that frames are never interleaved.
            Any socket error is raised as
            :class:`noamtest.errors.WriteFailure`.
        """

        with self._lock:
            if self.closed:
                raise errors.WriteFailure('responder to %s:%d is stopped' % (self.host, self.port))

            try:
                self.socket.sendall(frame)
            except OSError as e:
                raise errors.WriteFailure('cannot write to %s:%d: %s' % (self.host, self.port, e)) from e


    def stop(self):
        """ Close the connection. Redundant calls are a no-op.
        """

        with self._state:
            if self.closed:
                return
            self.closed = True

        # Shutting down first wakes up any sender blocked in sendall(),
        # which otherwise holds the lock indefinitely.

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        with self._lock:
            self.socket.close()

        logger.debug('responder to %s:%d stopped', self.host, self.port)

        on_stop = self.on_stop
        self.on_stop = None

        if on_stop is not None:
            on_stop()


# end of class Responder


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
