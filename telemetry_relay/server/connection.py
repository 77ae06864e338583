from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable

from telemetry_relay.protocol.types import ROLE_PRODUCER, ROLE_SUBSCRIBER


class Role(str, Enum):
    PRODUCER = "producer"
    CONSUMER = "consumer"

    @classmethod
    def from_wire(cls, role: str) -> "Role":
        """Map a register frame's role ("producer" | "subscriber")."""
        if role == ROLE_PRODUCER:
            return cls.PRODUCER
        if role == ROLE_SUBSCRIBER:
            return cls.CONSUMER
        raise ValueError(f"unknown role: {role!r}")


@dataclass(eq=False)
class Connection:

    """
    One connected peer: the sensor (producer) or a dashboard (consumer).

    `ws` is the underlying WebSocket. The role is fixed when the record is
    built and cannot be reassigned afterwards. `alive` is the liveness flag
    the supervisor clears before each probe and the pong sets again.
    """

    ws: Any
    role: Role
    conn_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    remote: str = ""
    alive: bool = True
    connected_at: float = field(default_factory=time.time)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "role" and "role" in self.__dict__:
            raise AttributeError("connection role is fixed once assigned")
        super().__setattr__(name, value)

    def tag(self) -> str:
        label = f"{self.role.value}:{self.conn_id[:8]}"
        return f"{label}@{self.remote}" if self.remote else label

    @property
    def is_producer(self) -> bool:
        return self.role is Role.PRODUCER

    def mark_alive(self) -> None:
        self.alive = True

    # ---- transport ------------------------------------------------------------

    async def send(self, text: str) -> None:
        await self.ws.send(text)

    async def ping(self) -> Awaitable[Any]:
        """Send a protocol ping; the returned awaitable resolves on the pong."""
        return await self.ws.ping()

    async def close(self, code: int = 1000, reason: str = "") -> None:
        await self.ws.close(code=code, reason=reason)

    def terminate(self) -> None:
        """Drop the transport without a closing handshake."""
        transport = getattr(self.ws, "transport", None)
        if transport is not None:
            transport.abort()
