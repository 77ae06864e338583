from __future__ import annotations

import asyncio
import logging
from typing import Any

from telemetry_relay.protocol import encode_sample, is_sample
from telemetry_relay.protocol.types import T_CONTROL, T_REGISTER
from .connection import Connection
from .registry import Registry

log = logging.getLogger(__name__)


class RelayEngine:

    """Validates producer samples and fans them out to every subscriber."""

    def __init__(self, registry: Registry, send_timeout: float = 5.0) -> None:
        self.registry = registry
        self.send_timeout = send_timeout

    async def on_producer_message(self, payload: Any) -> int:
        """
        Record `payload` as the latest sample and deliver it to a snapshot of
        the subscribers. Returns how many deliveries succeeded.

        Frames without a conductivity reading are dropped. A subscriber whose
        send fails, or does not finish within `send_timeout`, is evicted;
        delivery to the others carries on.
        """
        if not is_sample(payload):
            log.warning("unexpected producer message format, discarded: %r", payload)
            return 0

        self.registry.record_sample(payload)

        subscribers = self.registry.snapshot_consumers()
        if not subscribers:
            log.info("no active subscribers")
            return 0

        log.debug("relaying sample to %d subscribers", len(subscribers))
        text = encode_sample(payload, wrap=self.registry.wrap_samples)
        results = await asyncio.gather(
            *(self._deliver(conn, text) for conn in subscribers), return_exceptions=True
        )

        delivered = 0
        for conn, result in zip(subscribers, results):
            if isinstance(result, BaseException):
                log.warning("error sending to %s, evicting: %r", conn.tag(), result)
                self.registry.remove_consumer(conn)
                conn.terminate()
            else:
                delivered += 1
        return delivered

    async def _deliver(self, conn: Connection, text: str) -> None:
        # a peer that stopped reading blocks in drain() once its buffer is full
        await asyncio.wait_for(conn.send(text), timeout=self.send_timeout)

    async def on_consumer_message(self, conn: Connection, payload: Any) -> None:
        msg_type = payload.get("type") if isinstance(payload, dict) else None

        if msg_type == T_CONTROL:
            # reserved for commands towards the sensor
            log.debug("control message from %s: %r", conn.tag(), payload)
            return
        if msg_type == T_REGISTER:
            log.warning("%s sent register after classification; role stays %s",
                        conn.tag(), conn.role.value)
            return
        log.warning("unexpected message from %s, discarded: %r", conn.tag(), payload)
