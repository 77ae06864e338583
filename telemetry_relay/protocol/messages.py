from __future__ import annotations
import json
from typing import Any, Dict, Literal, Union

from pydantic import BaseModel, ValidationError

from telemetry_relay.errors import FrameError, HandshakeError
from .types import (
    FIELD_CONDUCTIVITY,
    T_DATA, T_ERROR, T_REGISTERED,
    ERR_BAD_JSON, ERR_BAD_REGISTER,
)


class RegisterRequest(BaseModel):
    """First frame a client sends under the handshake policy."""

    type: Literal["register"]
    role: Literal["producer", "subscriber"]


# inbound

def decode_frame(raw: Union[str, bytes]) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise FrameError(f"{ERR_BAD_JSON}: {e}") from e


def is_sample(obj: Any) -> bool:
    """Telemetry is any JSON object carrying a conductivity reading."""
    return isinstance(obj, dict) and FIELD_CONDUCTIVITY in obj


def parse_register(obj: Any) -> RegisterRequest:
    if not isinstance(obj, dict):
        raise HandshakeError(ERR_BAD_REGISTER, "first frame must be a register object")
    try:
        return RegisterRequest.model_validate(obj)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise HandshakeError(ERR_BAD_REGISTER, f"invalid register frame ({fields})") from e


# outbound builders

def msg_registered(role: str) -> Dict[str, Any]:
    return {"type": T_REGISTERED, "role": role}


def msg_error(code: str, message: str) -> Dict[str, Any]:
    return {"type": T_ERROR, "code": code, "message": message}


def msg_data(sample: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": T_DATA, "payload": sample}


def encode(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def encode_sample(sample: Dict[str, Any], wrap: bool = False) -> str:
    return encode(msg_data(sample) if wrap else sample)
