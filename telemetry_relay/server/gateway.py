"""
Relay transport: one WebSocket listener for the sensor and the dashboards.

- Role is decided once per connection, by request header (policy "header")
  or by a register frame sent first (policy "handshake").
- Exactly one JSON object per WebSocket frame.
- Liveness is driven by LivenessSupervisor through protocol ping/pong; the
  library's own keepalive is switched off.
- Plain GET requests on the same port are answered by HttpSurface.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from telemetry_relay.config import Settings
from telemetry_relay.errors import FrameError, HandshakeError
from telemetry_relay.protocol import decode_frame, encode, msg_error, msg_registered, parse_register
from telemetry_relay.protocol.types import (
    CLOSE_GOING_AWAY, CLOSE_POLICY_VIOLATION, REASON_SHUTDOWN,
    ERR_BAD_JSON, ERR_HANDSHAKE_TIMEOUT,
)
from .connection import Connection, Role
from .http import HttpSurface
from .liveness import LivenessSupervisor
from .registry import Registry
from .relay import RelayEngine

log = logging.getLogger(__name__)

POLICY_HANDSHAKE = "handshake"


def _remote(ws: Any) -> str:
    addr = getattr(ws, "remote_address", None)
    if not addr:
        return ""
    return f"{addr[0]}:{addr[1]}"


class Gateway:

    """Accepts connections, classifies them and wires them into the relay."""

    def __init__(
        self,
        registry: Registry,
        relay: RelayEngine,
        supervisor: LivenessSupervisor,
        settings: Settings,
    ) -> None:
        self.registry = registry
        self.relay = relay
        self.supervisor = supervisor
        self.settings = settings
        self.http = HttpSurface(registry, settings.STATIC_DIR)
        self._server: Optional[Server] = None

    # ---- public API -----------------------------------------------------------

    async def start(self) -> None:
        self._server = await serve(
            self._conn_handler,
            self.settings.HOST,
            self.settings.PORT,
            process_request=self._process_request,
            ping_interval=None,
            max_size=self.settings.MAX_MESSAGE_SIZE,
        )
        log.info("relay listening on ws://%s:%d (role policy: %s)",
                 self.settings.HOST, self.port, self.settings.ROLE_POLICY)
        self.supervisor.start()

    async def stop(self) -> None:
        await self.supervisor.stop()
        if self._server is None:
            return
        peers = self.registry.snapshot_all()
        if peers:
            await asyncio.gather(
                *(conn.close(CLOSE_GOING_AWAY, REASON_SHUTDOWN) for conn in peers),
                return_exceptions=True,
            )
        await self.registry.wait_closing()
        self.registry.clear()
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        log.info("relay stopped")

    @property
    def port(self) -> int:
        """Bound port; differs from settings when PORT is 0."""
        if self._server is None:
            return self.settings.PORT
        return next(iter(self._server.sockets)).getsockname()[1]

    # ---- HTTP -----------------------------------------------------------------

    def _process_request(self, ws: ServerConnection, request: Request) -> Optional[Response]:
        if request.headers.get("Upgrade", "").lower() == "websocket":
            return None
        return self.http.handle(request)

    # ---- connection lifecycle -------------------------------------------------

    async def _conn_handler(self, ws: ServerConnection) -> None:
        conn: Optional[Connection] = None
        try:
            conn = await self._classify(ws)
            if conn is None:
                return

            if conn.role is Role.PRODUCER:
                self.registry.register_producer(conn)
            else:
                await self.registry.register_consumer(conn)

            async for message in ws:
                await self._handle_frame(conn, message)

        except ConnectionClosed:
            pass
        except Exception as e:
            log.exception("link error: %s", e)
        finally:
            if conn is not None:
                self.registry.remove(conn)
                log.debug("connection closed: %s after %.1fs",
                          conn.tag(), time.time() - conn.connected_at)

    async def _classify(self, ws: ServerConnection) -> Optional[Connection]:
        remote = _remote(ws)

        if self.settings.ROLE_POLICY != POLICY_HANDSHAKE:
            value = ws.request.headers.get(self.settings.PRODUCER_HEADER)
            role = Role.PRODUCER if value == self.settings.PRODUCER_HEADER_VALUE else Role.CONSUMER
            return Connection(ws=ws, role=role, remote=remote)

        try:
            requested = await self._await_register(ws)
        except HandshakeError as e:
            log.warning("handshake rejected from %s: %s", remote or "?", e)
            await self._send_error(ws, e.code, e.message)
            await ws.close(CLOSE_POLICY_VIOLATION, e.code)
            return None

        conn = Connection(ws=ws, role=Role.from_wire(requested), remote=remote)
        await ws.send(encode(msg_registered(requested)))
        return conn

    async def _await_register(self, ws: ServerConnection) -> str:
        try:
            raw = await asyncio.wait_for(ws.recv(), timeout=self.settings.HANDSHAKE_TIMEOUT)
        except asyncio.TimeoutError:
            raise HandshakeError(ERR_HANDSHAKE_TIMEOUT, "no register frame received") from None
        try:
            obj = decode_frame(raw)
        except FrameError as e:
            raise HandshakeError(ERR_BAD_JSON, "first frame is not valid JSON") from e
        return parse_register(obj).role

    async def _handle_frame(self, conn: Connection, message: Any) -> None:
        if conn.role is Role.PRODUCER and self.registry.producer is not conn:
            # still readable while its supersession close completes
            log.warning("frame from superseded producer %s dropped", conn.tag())
            return

        try:
            payload = decode_frame(message)
        except FrameError as e:
            log.warning("invalid data from %s, discarded: %s", conn.tag(), e)
            return

        log.debug("received from %s: %r", conn.tag(), payload)
        if conn.role is Role.PRODUCER:
            await self.relay.on_producer_message(payload)
        else:
            await self.relay.on_consumer_message(conn, payload)

    # ---- error helper ---------------------------------------------------------

    async def _send_error(self, ws: ServerConnection, code: str, message: str) -> None:
        try:
            await ws.send(encode(msg_error(code, message)))
        except Exception as e:
            log.debug("could not send error frame: %s", e)


def build_relay(settings: Settings) -> Gateway:
    """Assemble registry, relay engine, supervisor and gateway."""
    registry = Registry(wrap_samples=settings.WRAP_SAMPLES)
    relay = RelayEngine(registry, send_timeout=settings.SEND_TIMEOUT)
    supervisor = LivenessSupervisor(
        registry, interval=settings.HEARTBEAT_INTERVAL, ping_timeout=settings.SEND_TIMEOUT,
    )
    return Gateway(registry, relay, supervisor, settings)
