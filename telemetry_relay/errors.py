from __future__ import annotations


class RelayError(Exception):
    """Base class for errors raised inside the relay."""


class FrameError(RelayError):
    """An inbound frame could not be decoded as JSON."""


class HandshakeError(RelayError):
    """A connection could not be classified as producer or subscriber."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
