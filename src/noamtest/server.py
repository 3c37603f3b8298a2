""" The fake Noam server: listen for lemma connections, hand each one to its
    own :class:`noamtest.session.Session`, and offer an aggregate view of
    everything the connected lemmas have said.
"""

import logging
import socket
import threading
import time

from . import config
from . import errors
from .session import Session

logger = logging.getLogger(__name__)


class Server:
    """ Accept lemma connections on *port*, the default is
        :data:`noamtest.config.port`; a *port* of zero will bind any free
        port, and :attr:`port` will be updated upon :func:`start`. Lemmas
        must register with the protocol *version*, the default is
        :data:`noamtest.config.version`.

        Sessions are never removed while the server is running; closed
        sessions are filtered out whenever they are queried, and all of
        them are discarded by :func:`stop`.
    """

    accept_delay = 0.1
    wait_interval = 0.01

    def __init__(self, port=None, version=None, address=''):

        if port is None:
            port = config.port

        self.address = address
        self.port = int(port)
        self.version = version

        self.socket = None
        self.thread = None
        self.shutdown = threading.Event()

        self._sessions = list()
        self._lock = threading.Lock()
        self._lifecycle = threading.Lock()


    def __enter__(self):
        self.start()
        return self


    def __exit__(self, *exc_info):
        self.stop()


    def start(self):
        """ Bind the listening socket and begin accepting connections in a
            background thread.
        """

        with self._lifecycle:
            self._start()


    def _start(self):

        if self.thread is not None:
            raise RuntimeError('server already started')

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        try:
            sock.bind((self.address, self.port))
            sock.listen(128)
        except OSError:
            sock.close()
            raise

        self.port = sock.getsockname()[1]
        self.socket = sock
        self.shutdown.clear()

        with self._lock:
            self._sessions = list()

        self.thread = threading.Thread(target=self.run)
        self.thread.daemon = True
        self.thread.start()

        logger.debug('listening on port %d', self.port)


    def stop(self):
        """ Stop accepting connections, then stop every session. This does
            not return until all of the background threads have exited and
            all of the sockets are closed. Redundant calls are a no-op, and
            concurrent calls wait for the first one to finish.

            A session still opening its responder connection cannot be
            interrupted; stopping it waits for the connection attempt to
            finish, at most :data:`noamtest.config.connect_timeout` seconds.
        """

        with self._lifecycle:
            self._stop()


    def _stop(self):

        thread = self.thread
        if thread is None:
            return

        self.shutdown.set()
        self._interrupt()
        thread.join()

        self.socket.close()
        self.socket = None
        self.thread = None

        with self._lock:
            sessions = self._sessions
            self._sessions = list()

        for session in sessions:
            session.stop()

        logger.debug('stopped after %d sessions', len(sessions))


    def run(self):

        while self.shutdown.is_set() == False:
            try:
                client, address = self.socket.accept()
            except OSError as e:
                if self.shutdown.is_set():
                    break

                # Aborted connections and descriptor exhaustion are not
                # fatal to the server; try again shortly.

                logger.warning('accept failed: %s', e)
                self.shutdown.wait(self.accept_delay)
                continue

            if self.shutdown.is_set():
                client.close()
                break

            session = Session(client, address[0], self.version)

            with self._lock:
                self._sessions.append(session)

            session.start()
            logger.debug('accepted connection from %s:%d', address[0], address[1])


    def _interrupt(self):
        """ Wake up the accept() call blocking in the background thread.
        """

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        else:
            return

        # Not every platform allows shutdown() on a listening socket. A
        # throwaway connection will wake up accept() instead.

        address = self.address
        if address == '' or address == '0.0.0.0':
            address = '127.0.0.1'

        try:
            poke = socket.create_connection((address, self.port), timeout=1)
        except OSError:
            return

        poke.close()


    def sessions(self):
        """ Return a list of the sessions that are not closed, in the order
            the connections were accepted.
        """

        with self._lock:
            sessions = list(self._sessions)

        return [session for session in sessions if session.closed == False]


    def messages(self):
        """ Remove and return all buffered messages from all live sessions.
            Messages from a single session retain their order; messages
            from different sessions are grouped by session, in session order.
        """

        messages = list()

        for session in self.sessions():
            messages.extend(session.messages())

        return messages


    def pending(self):
        """ Return the number of buffered messages across all live sessions,
            without removing them.
        """

        return sum(session.pending() for session in self.sessions())


    def broadcast(self, message):
        """ Send *message* to every live session. A failure to reach one
            lemma does not prevent delivery to the others; the return value
            is a dictionary mapping each session that could not be reached
            to the :class:`noamtest.errors.WriteFailure` describing why. An
            empty dictionary means every lemma was sent the message.
        """

        failures = dict()

        for session in self.sessions():
            try:
                session.send(message)
            except errors.WriteFailure as e:
                failures[session] = e
                logger.warning('broadcast to %r failed: %s', session, e)

        return failures


    def wait(self, count=1, timeout=None):
        """ Block until at least *count* live sessions have registered, for
            at most *timeout* seconds. Returns True if enough sessions were
            registered.
        """

        if timeout is None:
            expiration = None
        else:
            expiration = time.time() + timeout

        while True:
            registered = 0
            for session in self.sessions():
                if session.registered.is_set():
                    registered += 1

            if registered >= count:
                return True

            if expiration is not None and time.time() >= expiration:
                return False

            time.sleep(self.wait_interval)


# end of class Server


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
