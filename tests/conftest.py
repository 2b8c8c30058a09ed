"""Shared fixtures: a scripted nREPL server on a loopback socket."""

import socket

import curio
import curio.network
import pytest

from clojure_nrepl import bencode
from clojure_nrepl.connection import ConnectionInfo

CLOSE = object()


def frames(*messages) -> bytes:
    """Encodes response messages the way a nREPL server writes them."""
    return b''.join(bencode.encode(m) for m in messages)


class FakeNrepl:
    """
    Accepts one connection per scripted reply.

    Each reply is a list of byte chunks written after the request has been
    read. The connection is then held open until the client closes it,
    unless the reply ends with CLOSE.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []
        self.sock = None

    async def start(self) -> ConnectionInfo:
        self.sock = curio.network.tcp_server_socket('127.0.0.1', 0)
        port = self.sock.getsockname()[1]
        await curio.spawn(self._serve, daemon=True)
        return ConnectionInfo('127.0.0.1', port)

    async def _read_request(self, client):
        buffer = b''
        while True:
            data = await client.recv(1024)
            if not data:
                return None
            buffer += data
            objects, _ = bencode.decode(buffer)
            if objects:
                return objects[0]

    async def _serve(self):
        async with self.sock:
            for chunks in self.replies:
                client, _ = await self.sock.accept()
                async with client:
                    self.requests.append(await self._read_request(client))
                    for chunk in chunks:
                        if chunk is CLOSE:
                            break
                        await client.sendall(chunk)
                        await curio.sleep(0.01)
                    else:
                        while await client.recv(1024):
                            pass


class FakeRepl:
    """Stands in for LeinRepl, handing out a canned connection."""

    def __init__(self, connection=None, error=None):
        self.connection = connection
        self.error = error
        self.running = False
        self.stopped = 0

    async def start(self):
        self.running = True
        if self.error is not None:
            raise self.error
        return self.connection

    async def stop(self):
        self.running = False
        self.stopped += 1


@pytest.fixture
def free_port() -> int:
    """A port nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class RecordingNotifier:

    def __init__(self):
        self.messages = []

    def info(self, message):
        self.messages.append(('info', message))

    def warning(self, message):
        self.messages.append(('warning', message))

    def error(self, message):
        self.messages.append(('error', message))

    def status(self, text):
        self.messages.append(('status', text))


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
