import json

import pytest

from relay.connection import Connection
from relay.registry import Registry
from relay.router import Router


class FakeTransport:
    def __init__(self, buffered=0):
        self.buffered = buffered
        self.closing = False

    def is_closing(self):
        return self.closing

    def get_write_buffer_size(self):
        return self.buffered


class FakeSocket:
    """Stands in for web.WebSocketResponse, recording decoded sends"""

    def __init__(self):
        self.prepared = True
        self.closed = False
        self.fail = False
        self.sent = []
        self.on_send = None
        # when set, sends write and then wait on it like a socket waiting to drain
        self.drained = None

    async def send_str(self, data):
        if self.fail:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent.append(json.loads(data))
        if self.on_send is not None:
            self.on_send()
        if self.drained is not None:
            await self.drained.wait()

    async def close(self):
        self.closed = True


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def router(registry):
    return Router(registry, max_buffered_bytes=1024)


@pytest.fixture
def make_conn(registry):
    counter = iter(range(1, 10000))

    def _make(buffered=0):
        conn = Connection(FakeSocket(), FakeTransport(buffered), peer=f"peer-{next(counter)}")
        registry.accept(conn)
        return conn
    return _make


def msg(**fields):
    return json.dumps(fields)


def types(conn):
    return [m["type"] for m in conn.ws.sent]
