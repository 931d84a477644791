import threading

import pytest

from udprelay.directory import UserDirectory
from udprelay.server import UDPRelayServer

ALICE = ("10.0.0.1", 40001)
BOB = ("10.0.0.2", 40002)
CAROL = ("10.0.0.3", 40003)


class FakeSocket:
    """Records sendto() calls instead of touching the network."""

    def __init__(self):
        self.sent = []

    def sendto(self, data, addr):
        self.sent.append((addr, data))
        return len(data)

    def getsockname(self):
        return ("127.0.0.1", 7878)

    def close(self):
        pass

    def to(self, addr):
        return [data for a, data in self.sent if a == addr]


@pytest.fixture
def directory():
    return UserDirectory()


@pytest.fixture
def fake_sock():
    return FakeSocket()


@pytest.fixture
def server(fake_sock):
    return UDPRelayServer(sock=fake_sock)


class ScriptedSocket(FakeSocket):
    """recvfrom() replays ``script`` (frames or exceptions), then waits for
    ``release`` and fails like a closed socket."""

    def __init__(self, script=(), sender=ALICE):
        super().__init__()
        self.script = list(script)
        self.sender = sender
        self.calls = 0
        self.release = threading.Event()

    def recvfrom(self, bufsize):
        self.calls += 1
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, Exception):
                raise item
            return item, self.sender
        self.release.wait(5.0)
        raise OSError("socket closed")
