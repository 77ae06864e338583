from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from telemetry_relay.protocol import encode_sample
from telemetry_relay.protocol.types import CLOSE_NORMAL, REASON_SUPERSEDED
from .connection import Connection, Role

log = logging.getLogger(__name__)


class Registry:

    """
    Holds the producer slot, the subscriber list and the latest sample.

    Mutations never await, so under one event loop every change is a single
    step as far as other callbacks are concerned. Anything that iterates over
    subscribers while awaiting must use `snapshot_consumers()`.
    """

    def __init__(self, *, wrap_samples: bool = False) -> None:
        self.producer: Optional[Connection] = None
        self.consumers: List[Connection] = []
        self.latest_sample: Optional[Dict[str, Any]] = None
        self.wrap_samples = wrap_samples
        self._closing: Set[asyncio.Task] = set()

    # ---- producer -------------------------------------------------------------

    def register_producer(self, conn: Connection) -> None:
        if conn.role is not Role.PRODUCER:
            raise ValueError(f"{conn.tag()} is not a producer")
        old = self.producer
        self.producer = conn
        if old is not None and old is not conn:
            log.info("producer %s superseded by %s", old.tag(), conn.tag())
            self._close_later(old)
        log.info("producer connected: %s", conn.tag())

    def remove_producer(self, conn: Connection) -> bool:
        # a superseded producer closing late must not clear its successor
        if self.producer is conn:
            self.producer = None
            log.info("producer disconnected: %s", conn.tag())
            return True
        return False

    def _close_later(self, conn: Connection) -> None:
        task = asyncio.get_running_loop().create_task(conn.close(CLOSE_NORMAL, REASON_SUPERSEDED))
        self._closing.add(task)
        task.add_done_callback(self._closed)

    def _closed(self, task: asyncio.Task) -> None:
        self._closing.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("error closing previous producer: %s", exc)

    async def wait_closing(self) -> None:
        """Wait for pending supersession closes to finish."""
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    # ---- consumers ------------------------------------------------------------

    async def register_consumer(self, conn: Connection) -> None:
        if conn.role is not Role.CONSUMER:
            raise ValueError(f"{conn.tag()} is not a consumer")
        if conn not in self.consumers:
            self.consumers.append(conn)
        log.info("subscriber connected: %s - total: %d", conn.tag(), len(self.consumers))

        sample = self.latest_sample
        if sample:
            try:
                await conn.send(encode_sample(sample, wrap=self.wrap_samples))
            except Exception as e:
                log.warning("could not send latest sample to %s: %s", conn.tag(), e)

    def remove_consumer(self, conn: Connection) -> bool:
        try:
            self.consumers.remove(conn)
        except ValueError:
            return False
        log.info("subscriber disconnected: %s - remaining: %d", conn.tag(), len(self.consumers))
        return True

    # ---- either ---------------------------------------------------------------

    def remove(self, conn: Connection) -> bool:
        if conn.role is Role.PRODUCER:
            return self.remove_producer(conn)
        return self.remove_consumer(conn)

    def clear(self) -> None:
        self.producer = None
        self.consumers = []

    # ---- reads ----------------------------------------------------------------

    def snapshot_consumers(self) -> List[Connection]:
        return list(self.consumers)

    def snapshot_all(self) -> List[Connection]:
        conns = [self.producer] if self.producer is not None else []
        return conns + self.consumers

    def record_sample(self, sample: Dict[str, Any]) -> None:
        self.latest_sample = sample

    @property
    def consumer_count(self) -> int:
        return len(self.consumers)

    @property
    def producer_connected(self) -> bool:
        return self.producer is not None

    def stats(self) -> Dict[str, Any]:
        return {
            "subscriber_count": self.consumer_count,
            "producer_connected": self.producer_connected,
        }
