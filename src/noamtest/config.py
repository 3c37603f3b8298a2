""" Default settings for the fake server. Each value can be overridden by
    an environment variable at import time, or by reassigning the module
    attribute; the classes consult these values when they are instantiated,
    and explicit constructor arguments take precedence over both.
"""

import os


def _setting(name, default, cast=str):
    try:
        value = os.environ[name]
    except KeyError:
        return default

    try:
        return cast(value)
    except ValueError:
        raise ValueError('invalid value for %s: %r' % (name, value))


# The TCP port lemmas connect to. This is agreed upon out-of-band with the
# lemma under test; the lemma's own listening port arrives at registration.

port = _setting('NOAMTEST_PORT', 7733, int)

# The protocol version a lemma must declare in its registration message.
# It is compared verbatim.

version = _setting('NOAMTEST_VERSION', '1.0')

# Presence beacon settings. The real server announces itself every five
# seconds; tests will want something much shorter.

beacon_port = _setting('NOAMTEST_BEACON_PORT', 1030, int)
beacon_address = _setting('NOAMTEST_BEACON_ADDRESS', '255.255.255.255')
beacon_interval = _setting('NOAMTEST_BEACON_INTERVAL', 5.0, float)

# How long a session waits before reading again after the socket reports
# end-of-stream. The read loop keeps retrying until it is cancelled.

eof_delay = _setting('NOAMTEST_EOF_DELAY', 0.01, float)

# Upper bound, in seconds, on opening the responder connection back to a
# newly registered lemma. Stopping a session cannot interrupt the attempt,
# so this also bounds how long stop() may wait on one.

connect_timeout = _setting('NOAMTEST_CONNECT_TIMEOUT', 1.0, float)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
