import logging
import socket
import threading
import time

import pytest

from udprelay.protocol import RawMessage
import udprelay.server as server_module
from udprelay.server import UDPRelayServer, main

from .conftest import ALICE, BOB, CAROL, ScriptedSocket


def feed(server, addr, content):
    return server.handle_raw(RawMessage(addr, content))


def test_alice_bob_text_scenario(server, fake_sock):
    feed(server, ALICE, b"\x01alice")
    feed(server, BOB, b"\x01bob")
    feed(server, ALICE, b"\x04hi")
    assert fake_sock.to(BOB) == [b"\x00\x00\x00hi"]
    assert fake_sock.to(ALICE) == []


def test_alice_bob_query_scenario(server, fake_sock):
    feed(server, ALICE, b"\x01alice")
    feed(server, BOB, b"\x01bob")
    feed(server, BOB, b"\x03\x00")
    assert fake_sock.sent == [(BOB, b"\x01\x01\x00alice")]


def test_color_shows_up_in_relayed_text(server, fake_sock):
    feed(server, ALICE, b"\x01alice")
    feed(server, BOB, b"\x01bob")
    feed(server, CAROL, b"\x01carol")
    feed(server, ALICE, b"\x02\x07")
    feed(server, ALICE, b"\x04hey")
    assert fake_sock.to(BOB) == [b"\x00\x00\x07hey"]
    assert fake_sock.to(CAROL) == [b"\x00\x00\x07hey"]


def test_login_and_color_are_not_acknowledged(server, fake_sock):
    feed(server, ALICE, b"\x01alice")
    feed(server, ALICE, b"\x02\x03")
    assert fake_sock.sent == []


@pytest.mark.parametrize("content", [b"", b"\x00", b"\x09abc", b"\x02\x07", b"\x03\x00", b"\x04hi"])
def test_unregistered_or_garbage_frames_are_dropped(server, fake_sock, content):
    feed(server, BOB, b"\x01bob")
    assert feed(server, ALICE, content) == []
    assert fake_sock.sent == []
    assert len(server.directory) == 1
    assert server.directory.find_by_id(0).color is None


def test_failed_send_does_not_stop_fanout(server, fake_sock):
    feed(server, ALICE, b"\x01alice")
    feed(server, BOB, b"\x01bob")
    feed(server, CAROL, b"\x01carol")
    real_sendto = fake_sock.sendto

    def flaky_sendto(data, addr):
        if addr == BOB:
            raise OSError("unreachable")
        return real_sendto(data, addr)

    fake_sock.sendto = flaky_sendto
    feed(server, ALICE, b"\x04hi")
    assert fake_sock.to(CAROL) == [b"\x00\x00\x00hi"]


def test_queue_is_bounded(fake_sock):
    assert UDPRelayServer(sock=fake_sock, queue_size=5).recv_q.maxsize == 5


def test_main_rejects_bad_port():
    with pytest.raises(SystemExit):
        main(["--port", "nope"])


def _recv(sock):
    data, _ = sock.recvfrom(1024)
    return data


def test_loopback_relay():
    server = UDPRelayServer("127.0.0.1", 0)
    actor = threading.Thread(target=server.start, daemon=True)
    actor.start()
    target = server.address

    clients = []
    try:
        for _ in range(2):
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            sock.bind(("127.0.0.1", 0))
            sock.settimeout(2.0)
            clients.append(sock)
        a, b = clients

        a.sendto(b"\x01alice", target)
        b.sendto(b"\x01bob", target)
        b.sendto(b"\x03\x00", target)            # also proves both logins landed
        assert _recv(b) == b"\x01\x01\x00alice"

        a.sendto(b"\x04hi", target)
        assert _recv(b) == b"\x00\x00\x00hi"
        with pytest.raises(socket.timeout):
            a.settimeout(0.3)
            _recv(a)
    finally:
        for sock in clients:
            sock.close()
        server.stop()
        actor.join(timeout=2.0)

    assert not actor.is_alive()


def test_receive_failure_stops_the_server(caplog):
    sock = ScriptedSocket()
    sock.release.set()                          # recvfrom fails straight away
    server = UDPRelayServer(sock=sock)
    with caplog.at_level(logging.ERROR, logger="udprelay"):
        server.start()                          # returns instead of looping
    assert not server.running.is_set()
    assert isinstance(server.failure, OSError)
    assert any(r.levelno == logging.ERROR for r in caplog.records)


def test_deliberate_stop_is_not_a_failure():
    sock = ScriptedSocket()
    server = UDPRelayServer(sock=sock)
    receiver = threading.Thread(target=server._recv_loop, daemon=True)
    receiver.start()
    server.stop()
    sock.release.set()
    receiver.join(timeout=2.0)
    assert not receiver.is_alive()
    assert server.failure is None


def test_connection_reset_is_ignored():
    sock = ScriptedSocket([ConnectionResetError("port closed"), b"\x01alice"])
    server = UDPRelayServer(sock=sock)
    receiver = threading.Thread(target=server._recv_loop, daemon=True)
    receiver.start()
    try:
        assert server.recv_q.get(timeout=2.0) == RawMessage(ALICE, b"\x01alice")
        assert server.running.is_set()
        assert server.failure is None
    finally:
        server.running.clear()
        sock.release.set()
        receiver.join(timeout=2.0)


def test_full_queue_blocks_receiver_without_dropping():
    frames = [b"\x01alice", b"\x04one", b"\x04two"]
    sock = ScriptedSocket(frames)
    server = UDPRelayServer(sock=sock, queue_size=1)
    receiver = threading.Thread(target=server._recv_loop, daemon=True)
    receiver.start()
    try:
        # First frame fills the queue; the receiver is stuck putting the second.
        deadline = time.monotonic() + 2.0
        while sock.calls < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        time.sleep(0.1)
        assert sock.calls == 2
        assert server.recv_q.full()
        assert receiver.is_alive()

        got = [server.recv_q.get(timeout=2.0).content for _ in frames]
        assert got == frames
    finally:
        server.running.clear()
        sock.release.set()
        receiver.join(timeout=2.0)


class _StubServer:
    def __init__(self, failure):
        self.failure = failure

    def start(self):
        pass


@pytest.mark.parametrize("failure, code", [(OSError("boom"), 1), (None, None)])
def test_main_exit_status_reflects_receive_failure(monkeypatch, failure, code):
    monkeypatch.setattr(server_module, "configure_logging", lambda *a, **kw: None)
    monkeypatch.setattr(server_module, "UDPRelayServer", lambda *a: _StubServer(failure))
    if code is None:
        main(["--log-file", ""])
    else:
        with pytest.raises(SystemExit) as info:
            main(["--log-file", ""])
        assert info.value.code == code
