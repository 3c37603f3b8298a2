import threading
import time

import noamtest
import pytest
import unitpeer


def test_register(server, lemmas):

    lemma = lemmas()
    lemma.register(hears=('speed',), speaks=('rpm', 'torque'))

    # The responder connection arrives before anything else is sent.

    lemma.accept()

    assert server.wait(1, timeout=5) == True

    sessions = server.sessions()
    assert len(sessions) == 1

    session = sessions[0]
    assert session.host == '127.0.0.1'
    assert session.port == lemma.reply_port
    assert session.hears == ['speed']
    assert session.speaks == ['rpm', 'torque']


def test_messages(server, lemmas):

    count = 5
    per_lemma = 20

    connected = [lemmas() for number in range(count)]

    def chatter(number, lemma):
        lemma.register()
        for sequence in range(per_lemma):
            lemma.send(['event', 'lemma%d' % (number), sequence])

    threads = list()
    for number, lemma in enumerate(connected):
        thread = threading.Thread(target=chatter, args=(number, lemma))
        thread.start()
        threads.append(thread)

    for thread in threads:
        thread.join()

    assert server.wait(count, timeout=5) == True
    assert unitpeer.wait_for(lambda: server.pending() == count * per_lemma)

    messages = server.messages()
    assert len(messages) == count * per_lemma

    # Order is preserved for each lemma, regardless of how the lemmas
    # interleaved with one another.

    for number in range(count):
        name = 'lemma%d' % (number)
        sequence = [message[2] for message in messages if message[1] == name]
        assert sequence == list(range(per_lemma))

    # Each message is only ever returned once.

    assert server.messages() == []
    assert server.pending() == 0


def test_bad_lemma_is_isolated(server, lemmas):

    good = lemmas()
    good.register()

    bad_tag = lemmas()
    bad_tag.register(tag='hello')

    bad_version = lemmas()
    bad_version.register(version='0.0.1')

    assert server.wait(1, timeout=5) == True
    assert unitpeer.wait_for(lambda: len(server._sessions) == 3 and len(server.sessions()) == 1)

    session = server.sessions()[0]
    assert session.port == good.reply_port

    errors = [type(tracked.error) for tracked in server._sessions if tracked.closed]
    assert noamtest.errors.UnexpectedTag in errors
    assert noamtest.errors.VersionMismatch in errors

    good.send(['still', 'here'])
    assert unitpeer.wait_for(lambda: server.pending() == 1)
    assert server.messages() == [['still', 'here']]

    # New connections are still accepted.

    late = lemmas()
    late.register()
    assert server.wait(2, timeout=5) == True


def test_slow_lemma_does_not_block_accept(server, lemmas):

    # This one connects and never registers.

    silent = lemmas()

    lemma = lemmas()
    lemma.register()

    assert server.wait(1, timeout=5) == True

    sessions = server.sessions()
    assert len(sessions) == 2
    assert sessions[0].registered.is_set() == False
    assert sessions[1].registered.is_set() == True


def test_broadcast(server, lemmas):

    first = lemmas()
    first.register()
    second = lemmas()
    second.register()

    assert server.wait(2, timeout=5) == True

    failures = server.broadcast({'x': 1})
    assert failures == dict()

    assert first.receive() == {'x': 1}
    assert second.receive() == {'x': 1}


def test_broadcast_failure(server, lemmas):

    first = lemmas()
    first.register()
    assert server.wait(1, timeout=5) == True

    second = lemmas()
    second.register()
    assert server.wait(2, timeout=5) == True

    broken, working = server.sessions()
    assert broken.port == first.reply_port

    # Break the first responder without stopping it; the session is still
    # live, and the write to it will fail.

    broken.responder.socket.close()

    failures = server.broadcast({'x': 1})

    assert list(failures.keys()) == [broken]
    assert isinstance(failures[broken], noamtest.errors.WriteFailure)

    assert second.receive() == {'x': 1}


def test_broadcast_lemma_gone(server, lemmas):

    first = lemmas()
    first.register()
    assert server.wait(1, timeout=5) == True

    second = lemmas()
    second.register()
    assert server.wait(2, timeout=5) == True

    gone, working = server.sessions()

    # The lemma closes its end of the responder connection. TCP only
    # reports this on the write after the one that provokes the reset, so
    # the first broadcast still appears to succeed for it.

    first.accept().close()
    time.sleep(0.05)

    assert server.broadcast(['event', 'x', 1]) == dict()
    time.sleep(0.05)

    failures = server.broadcast(['event', 'x', 2])

    assert list(failures.keys()) == [gone]
    assert isinstance(failures[gone], noamtest.errors.WriteFailure)
    assert isinstance(failures[gone].__cause__, OSError)

    assert second.receive() == ['event', 'x', 1]
    assert second.receive() == ['event', 'x', 2]


def test_broadcast_continues(server, lemmas, monkeypatch):

    for number in range(3):
        lemmas().register()

    assert server.wait(3, timeout=5) == True
    first, second, third = server.sessions()

    def refuse(message):
        raise noamtest.errors.WriteFailure('refused')

    monkeypatch.setattr(second, 'send', refuse)

    delivered = list()
    for session in (first, third):
        monkeypatch.setattr(session, 'send', delivered.append)

    failures = server.broadcast(['event', 'x', 1])

    assert list(failures.keys()) == [second]
    assert delivered == [['event', 'x', 1], ['event', 'x', 1]]


def test_closed_sessions_are_hidden(server, lemmas):

    first = lemmas()
    first.register()
    second = lemmas()
    second.register()

    assert server.wait(2, timeout=5) == True
    first_session, second_session = server.sessions()

    first.send(['unread'])
    assert unitpeer.wait_for(lambda: first_session.pending() == 1)

    first_session.stop()

    assert server.sessions() == [second_session]
    assert server.messages() == []

    # Closed sessions are still tracked until the server stops.

    assert first_session in server._sessions


def test_stop():

    server = noamtest.Server(port=0, version=unitpeer.version)
    server.start()

    first = unitpeer.Lemma(server.port)
    first.register()
    second = unitpeer.Lemma(server.port)

    assert server.wait(1, timeout=5) == True

    # One session is mid-frame, the other never registered.

    first.socket.sendall(b'000050{"partial":')
    time.sleep(0.05)

    sessions = list(server._sessions)
    listener = server.socket

    begin = time.time()
    server.stop()
    elapsed = time.time() - begin

    assert elapsed < 1
    assert server.thread is None
    assert listener.fileno() == -1

    for session in sessions:
        assert session.closed == True
        assert session.socket.fileno() == -1
        assert session.thread.is_alive() == False
        if session.responder is not None:
            assert session.responder.socket.fileno() == -1

    assert server.sessions() == []
    assert server.messages() == []

    # Redundant calls should be a no-op.

    server.stop()

    first.close()
    second.close()


def test_concurrent_stop():

    server = noamtest.Server(port=0, version=unitpeer.version)
    server.start()

    lemma = unitpeer.Lemma(server.port)
    lemma.register()
    assert server.wait(1, timeout=5) == True

    test_concurrent_stop.failures = list()

    def stop():
        try:
            server.stop()
        except Exception as e:
            test_concurrent_stop.failures.append(e)

    threads = [threading.Thread(target=stop) for count in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert test_concurrent_stop.failures == []
    assert server.thread is None
    assert server.socket is None
    assert server.sessions() == []

    lemma.close()


def test_restart():

    server = noamtest.Server(port=0, version=unitpeer.version)

    for attempt in range(3):
        server.start()

        lemma = unitpeer.Lemma(server.port)
        lemma.register()
        lemma.send(['attempt', attempt])

        assert server.wait(1, timeout=5) == True
        assert unitpeer.wait_for(lambda: server.pending() == 1)
        assert server.messages() == [['attempt', attempt]]

        server.stop()
        lemma.close()

    with pytest.raises(RuntimeError):
        server.start()
        server.start()

    server.stop()


def test_context_manager():

    with noamtest.Server(port=0, version=unitpeer.version) as server:
        lemma = unitpeer.Lemma(server.port)
        lemma.register()
        assert server.wait(1, timeout=5) == True

    assert server.thread is None
    assert server.sessions() == []
    lemma.close()


def test_wait_timeout(server):

    begin = time.time()
    assert server.wait(1, timeout=0.1) == False
    elapsed = time.time() - begin

    assert elapsed >= 0.1
    assert elapsed < 1


def test_defaults(monkeypatch):

    monkeypatch.setattr(noamtest.config, 'port', 8844)
    server = noamtest.Server()
    assert server.port == 8844


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
