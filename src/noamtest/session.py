""" Server-side handling of a single lemma connection. A :class:`Session`
    owns the inbound socket, runs the registration handshake, and then
    collects every message the lemma sends until it is told to stop.
"""

import collections
import logging
import queue
import socket
import threading

from . import codec
from . import config
from . import errors
from . import json
from .responder import Responder

logger = logging.getLogger(__name__)

register_tag = 'register'

Registration = collections.namedtuple('Registration', ('tag', 'port', 'hears', 'speaks', 'version'))


def parse_registration(payload, version):
    """ Interpret the raw *payload* of the first frame on a connection as
        a registration message, and confirm that it declares the expected
        protocol *version*. The message is a JSON array::

            ["register", <ignored>, port, hears, speaks, <ignored>, version]

        Returns a :class:`Registration`; raises a subclass of
        :class:`noamtest.errors.ProtocolViolation` if the message is not
        acceptable.
    """

    try:
        message = json.loads(payload)
    except json.DecodeError as e:
        raise errors.MalformedRegistration('registration is not valid JSON: ' + str(e)) from e

    if isinstance(message, list):
        pass
    else:
        raise errors.MalformedRegistration('registration is not a JSON array: %r' % (message,))

    if message and message[0] != register_tag:
        raise errors.UnexpectedTag(message[0])

    if len(message) < 7:
        raise errors.MalformedRegistration('registration has %d fields, expected 7' % (len(message)))

    tag, _, port, hears, speaks, _, their_version = message[:7]

    if their_version != version:
        raise errors.VersionMismatch(their_version, version)

    if isinstance(port, int) and not isinstance(port, bool) and 0 < port < 65536:
        pass
    else:
        raise errors.MalformedRegistration('invalid responder port: %r' % (port,))

    return Registration(tag, port, hears, speaks, their_version)



class Session:
    """ One inbound lemma connection. The *sock* is the accepted socket,
        and *host* is the address the lemma connected from; the responder
        connection will be made back to that host. The lemma must declare
        *version* when it registers, the default is
        :data:`noamtest.config.version`.

        The session does nothing until :func:`start` is called, at which
        point a background thread performs the handshake and then reads
        frames into the inbox until :func:`stop` is called.

        :ivar closed: True once the session has shut down for any reason.
        :ivar error: The exception that ended the session, if any.
        :ivar registered: A :class:`threading.Event` set upon registration.
    """

    def __init__(self, sock, host, version=None, eof_delay=None):

        if version is None:
            version = config.version
        if eof_delay is None:
            eof_delay = config.eof_delay

        self.socket = sock
        self.host = host
        self.version = version
        self.eof_delay = eof_delay

        self.port = None
        self.hears = None
        self.speaks = None
        self.responder = None

        self.closed = False
        self.error = None
        self.registered = threading.Event()
        self.shutdown = threading.Event()
        self.thread = None

        self._inbox = queue.SimpleQueue()
        self._settled = threading.Event()
        self._close_lock = threading.Lock()


    def __repr__(self):

        if self.closed:
            state = 'closed'
        elif self.registered.is_set():
            state = 'registered'
        else:
            state = 'unregistered'

        return '<Session %s:%s %s>' % (self.host, self.port, state)


    def start(self):
        """ Begin the handshake and read loop in a background thread.
        """

        if self.thread is not None:
            raise RuntimeError('session already started')

        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()


    def cancel(self):
        """ Signal the background thread to exit, and interrupt any blocking
            read it may be waiting on. This does not wait for the thread to
            finish; see :func:`stop` for that.
        """

        self.shutdown.set()

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Already closed, or never connected.
            pass


    def stop(self):
        """ Shut down the session and wait for its background thread to
            exit. Redundant calls are a no-op.

            The connection attempt to the lemma's responder port is not
            interrupted by cancellation; if one is in progress this waits
            for it, at most :data:`noamtest.config.connect_timeout` seconds.
        """

        self.cancel()

        thread = self.thread
        if thread is None:
            self._close()
        elif thread is not threading.current_thread():
            thread.join()


    def wait(self, timeout=None):
        """ Block until the session either registers or closes, for at most
            *timeout* seconds. Returns True if the session is registered.
        """

        self._settled.wait(timeout)
        return self.registered.is_set()


    def messages(self):
        """ Remove and return all messages received so far, in the order
            they arrived. Each message is only ever returned once.
        """

        messages = list()

        while True:
            try:
                message = self._inbox.get(block=False)
            except queue.Empty:
                break
            messages.append(message)

        return messages


    def pending(self):
        """ Return the number of messages waiting in the inbox, without
            removing them.
        """

        return self._inbox.qsize()


    def send(self, message):
        """ Send *message* to the lemma via the responder connection.
        """

        responder = self.responder

        if responder is None:
            raise errors.WriteFailure('session has not registered: ' + repr(self))

        responder.send(message)


    def run(self):

        try:
            if self._register():
                self._receive()
        except (errors.NoamTestError, OSError) as e:
            if self.shutdown.is_set():
                # Interrupted mid-frame by cancel(); not a lemma problem.
                pass
            else:
                self.error = e
                logger.warning('closing %r: %s', self, e)
        except Exception as e:
            self.error = e
            logger.exception('unexpected failure in %r', self)
        finally:
            self._close()


    def _register(self):
        """ Read and act on the registration message. Returns False if the
            connection went away before registering.
        """

        payload = codec.decode(self.socket)

        if payload is None:
            if not self.shutdown.is_set():
                logger.debug('connection from %s closed before registering', self.host)
            return False

        registration = parse_registration(payload, self.version)

        self.port = registration.port
        self.hears = registration.hears
        self.speaks = registration.speaks

        timeout = config.connect_timeout
        self.responder = Responder(self.host, self.port, on_stop=self.cancel, timeout=timeout)

        if self.shutdown.is_set():
            # Cancelled while connecting; _close() stops the responder.
            return False

        self.registered.set()
        self._settled.set()

        logger.debug('registered %r hears=%r speaks=%r', self, self.hears, self.speaks)
        return True


    def _receive(self):

        while self.shutdown.is_set() == False:
            payload = codec.decode(self.socket)

            if payload is None:
                # The order in which sockets get shut down is not always
                # what you expect; the lemma may have closed its side while
                # the harness still considers it live. Keep trying until
                # this session is cancelled.

                self.shutdown.wait(self.eof_delay)
                continue

            try:
                message = json.loads(payload)
            except json.DecodeError as e:
                raise errors.FramingError('message is not valid JSON: ' + str(e)) from e

            self._inbox.put(message)


    def _close(self):

        with self._close_lock:
            if self.closed:
                return
            self.closed = True

        if self.responder is not None:
            self.responder.stop()

        self.socket.close()
        self._settled.set()

        logger.debug('closed %r', self)


# end of class Session


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
