from .connection import Connection, Role
from .registry import Registry
from .relay import RelayEngine
from .liveness import LivenessSupervisor
from .http import HttpSurface
from .gateway import Gateway, build_relay

__all__ = [
    "Connection", "Role",
    "Registry", "RelayEngine", "LivenessSupervisor",
    "HttpSurface", "Gateway", "build_relay",
]
