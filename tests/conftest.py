import pytest

import noamtest
import unitpeer


@pytest.fixture
def server():

    server = noamtest.Server(port=0, version=unitpeer.version)
    server.start()

    yield server

    server.stop()


@pytest.fixture
def lemmas(server):
    """ Factory for :class:`unitpeer.Lemma` instances connected to the
        running server; all of them are closed when the test is done.
    """

    created = list()

    def connect():
        lemma = unitpeer.Lemma(server.port)
        created.append(lemma)
        return lemma

    yield connect

    for lemma in created:
        lemma.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
