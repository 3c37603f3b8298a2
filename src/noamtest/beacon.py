""" A periodic UDP broadcast announcing the fake server's presence. Lemmas
    on the local network listen for these datagrams to find a server to
    connect to. The content of the datagram is up to the caller.
"""

import logging
import socket
import threading

from . import config

logger = logging.getLogger(__name__)


class Beacon:
    """ Broadcast *payload* every *interval* seconds to *address* on *port*.
        The defaults come from :mod:`noamtest.config`. The *payload* can be
        bytes, a string, or a callable returning either; a callable is
        invoked for every datagram sent.

        :ivar sent: The number of datagrams sent since :func:`start`.
    """

    def __init__(self, payload, port=None, interval=None, address=None):

        if port is None:
            port = config.beacon_port
        if interval is None:
            interval = config.beacon_interval
        if address is None:
            address = config.beacon_address

        self.payload = payload
        self.port = int(port)
        self.interval = float(interval)
        self.address = address

        self.sent = 0
        self.socket = None
        self.thread = None
        self.shutdown = threading.Event()

        self._lifecycle = threading.Lock()


    def start(self):
        """ Open the broadcast socket and begin sending in a background
            thread.
        """

        with self._lifecycle:
            if self.thread is not None:
                raise RuntimeError('beacon already started')

            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

            self.sent = 0
            self.socket = sock
            self.shutdown.clear()

            self.thread = threading.Thread(target=self.run)
            self.thread.daemon = True
            self.thread.start()


    def stop(self):
        """ Stop broadcasting and wait for the background thread to exit.
            Redundant calls are a no-op.
        """

        with self._lifecycle:
            thread = self.thread
            if thread is None:
                return

            self.shutdown.set()
            thread.join()
            self.thread = None


    def run(self):

        destination = (self.address, self.port)

        try:
            while self.shutdown.is_set() == False:
                try:
                    self.socket.sendto(self._payload(), destination)
                except OSError as e:
                    # Broadcasts are best-effort; an unreachable network
                    # now may well be reachable next time.
                    logger.warning('beacon to %s:%d failed: %s', self.address, self.port, e)
                except Exception:
                    # A misbehaving payload callable skips this cycle only.
                    logger.exception('beacon payload failed')
                else:
                    self.sent += 1

                self.shutdown.wait(self.interval)
        finally:
            self.socket.close()


    def _payload(self):

        payload = self.payload

        if callable(payload):
            payload = payload()

        if isinstance(payload, str):
            payload = payload.encode('utf-8')

        return payload


# end of class Beacon


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
