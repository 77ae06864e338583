"""
Shared fixtures for the relay tests.

Provides:
- FakeWebSocket: records sends/pings/closes, can be told to fail
- make_conn: builds Connection records around fake sockets
- registry / relay / supervisor: an isolated object graph per test
- gateway: a real listener on an ephemeral port
- RawClient: a sans-I/O WebSocket client that reads nothing after the handshake
"""

import asyncio
import contextlib
import json
import socket

import pytest
from websockets.asyncio.client import connect
from websockets.client import ClientProtocol
from websockets.protocol import State
from websockets.uri import parse_uri

from telemetry_relay.config import Settings
from telemetry_relay.server import (
    Connection, Role, Registry, RelayEngine, LivenessSupervisor, build_relay,
)


class FakeTransport:
    def __init__(self):
        self.aborted = False

    def abort(self):
        self.aborted = True


class FakeWebSocket:
    """Stands in for a websockets ServerConnection."""

    def __init__(self, *, fail_send=False, fail_ping=False, fail_close=False, auto_pong=True,
                 hang_send=False, hang_ping=False):
        self.sent = []
        self.pings = []
        self.closed_with = None
        self.fail_send = fail_send
        self.fail_ping = fail_ping
        self.fail_close = fail_close
        self.auto_pong = auto_pong
        self.hang_send = hang_send
        self.hang_ping = hang_ping
        self.transport = FakeTransport()

    async def send(self, text):
        if self.hang_send:
            await asyncio.Event().wait()
        if self.fail_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(text)

    async def ping(self):
        if self.hang_ping:
            await asyncio.Event().wait()
        if self.fail_ping:
            raise ConnectionResetError("peer went away")
        waiter = asyncio.get_running_loop().create_future()
        self.pings.append(waiter)
        if self.auto_pong:
            waiter.set_result(0.001)
        return waiter

    async def close(self, code=1000, reason=""):
        if self.fail_close:
            raise RuntimeError("close failed")
        self.closed_with = (code, reason)

    @property
    def messages(self):
        return [json.loads(m) for m in self.sent]


@pytest.fixture
def make_conn():
    def _make(role=Role.CONSUMER, **ws_kwargs):
        return Connection(ws=FakeWebSocket(**ws_kwargs), role=role, remote="127.0.0.1:5000")
    return _make


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def relay(registry):
    return RelayEngine(registry)


@pytest.fixture
def supervisor(registry):
    return LivenessSupervisor(registry, interval=3600)


@pytest.fixture
def relay_settings(tmp_path):
    return Settings(
        HOST="127.0.0.1",
        PORT=0,
        HEARTBEAT_INTERVAL=3600,
        HANDSHAKE_TIMEOUT=2,
        STATIC_DIR=str(tmp_path / "static"),
    )


@pytest.fixture
async def gateway(relay_settings):
    gw = build_relay(relay_settings)
    await gw.start()
    yield gw
    await gw.stop()


def ws_connect(uri, **kwargs):
    """Client connection that ignores proxy settings from the environment."""
    return connect(uri, proxy=None, **kwargs)


async def wait_until(predicate, timeout=2.0):
    """Poll `predicate` on the running loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class RawClient:
    """
    WebSocket client over a bare stream, driven by the websockets sans-I/O
    protocol. Nothing is read after the opening handshake: the server sees a
    peer that stopped consuming, and that ignores a close it was sent.
    """

    def __init__(self, reader, writer, protocol):
        self.reader = reader
        self.writer = writer
        self.protocol = protocol

    @classmethod
    async def connect(cls, uri, headers=None, rcvbuf=None):
        wsuri = parse_uri(uri)
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if rcvbuf:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, rcvbuf)
        sock.setblocking(False)
        await asyncio.get_running_loop().sock_connect(sock, (wsuri.host, wsuri.port))
        reader, writer = await asyncio.open_connection(sock=sock)

        protocol = ClientProtocol(wsuri)
        request = protocol.connect()
        for name, value in (headers or {}).items():
            request.headers[name] = value
        protocol.send_request(request)

        client = cls(reader, writer, protocol)
        await client._flush()
        protocol.receive_data(await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout=2))
        if protocol.state is not State.OPEN:
            await client.close()
            raise AssertionError(f"handshake failed: {protocol.handshake_exc}")
        return client

    async def send_json(self, obj):
        self.protocol.send_text(json.dumps(obj).encode())
        await self._flush()

    async def close(self):
        self.writer.close()
        with contextlib.suppress(ConnectionError):
            await self.writer.wait_closed()

    async def _flush(self):
        for data in self.protocol.data_to_send():
            if data:
                self.writer.write(data)
        await self.writer.drain()


async def wait_stalled(conn, settle=0.3, timeout=10.0):
    """Wait until a server-side connection's write buffer stops draining."""
    transport = conn.ws.transport
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    last = -1
    while True:
        size = transport.get_write_buffer_size()
        if size > 0 and size == last:
            return
        if loop.time() > deadline:
            raise AssertionError("write buffer never stalled")
        last = size
        await asyncio.sleep(settle)
