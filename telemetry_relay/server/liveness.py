from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import List, Optional

from .connection import Connection
from .registry import Registry

log = logging.getLogger(__name__)


class LivenessSupervisor:

    """
    Periodic ping sweep over every registered connection.

    Each sweep evicts connections that have not answered the previous ping,
    then clears the flag on the rest and pings them again. A pong sets the
    flag back whenever it arrives, so a dead peer holds its slot for at most
    two intervals. A ping that cannot be written within `ping_timeout`
    counts as a failure, so a peer that stopped reading cannot stall a sweep.
    """

    def __init__(self, registry: Registry, interval: float = 30.0, ping_timeout: float = 5.0) -> None:
        self.registry = registry
        self.interval = interval
        self.ping_timeout = ping_timeout
        self._task: Optional[asyncio.Task] = None

    # ---- timer ----------------------------------------------------------------

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.sweep()
                except Exception as e:
                    log.exception("liveness sweep failed: %s", e)
        except asyncio.CancelledError:
            return

    # ---- sweep ----------------------------------------------------------------

    async def sweep(self) -> List[Connection]:
        """Run one probe/evict pass. Returns the evicted connections."""
        evicted: List[Connection] = []
        probing: List[Connection] = []

        for conn in self.registry.snapshot_all():
            if not conn.alive:
                log.info("no pong from %s since last sweep, terminating", conn.tag())
                self._evict(conn)
                evicted.append(conn)
            else:
                conn.alive = False
                probing.append(conn)

        if probing:
            waiters = await asyncio.gather(
                *(asyncio.wait_for(conn.ping(), timeout=self.ping_timeout) for conn in probing),
                return_exceptions=True,
            )
            for conn, waiter in zip(probing, waiters):
                if isinstance(waiter, BaseException):
                    log.info("ping to %s failed, terminating: %r", conn.tag(), waiter)
                    self._evict(conn)
                    evicted.append(conn)
                else:
                    waiter.add_done_callback(partial(self._on_pong, conn))

        if evicted:
            log.info("liveness sweep evicted %d connection(s)", len(evicted))
        return evicted

    def _evict(self, conn: Connection) -> None:
        conn.terminate()
        self.registry.remove(conn)

    @staticmethod
    def _on_pong(conn: Connection, waiter: asyncio.Future) -> None:
        if waiter.cancelled():
            return
        # pong waiters fail with ConnectionClosed when the peer goes away
        if waiter.exception() is None:
            conn.mark_alive()
