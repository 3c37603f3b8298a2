""" Python implementation of a fake Noam server. This stands in for the
    server side of the protocol when testing a lemma: it accepts lemma
    connections, records what they say, and can talk back to them.
"""

# Utility components.

from . import config
from . import errors
from . import json

# Wire handling used by multiple other components.

from . import codec
from . import responder
from . import session

# Primary public-facing interfaces.

from .beacon import Beacon
from .server import Server
from .session import Session

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
