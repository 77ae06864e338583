# protocol/types.py
from __future__ import annotations

# ---- Sample fields (producer -> server -> subscribers) ----
FIELD_CONDUCTIVITY = "C"   # mandatory, marks a frame as telemetry; "PH" and "T" pass through

# ---- Control message types ----
T_REGISTER = "register"      # client -> server, first frame under the handshake policy
T_REGISTERED = "registered"  # server -> client
T_CONTROL = "control"        # subscriber -> server, accepted and ignored
T_DATA = "data"              # server -> subscriber, only when samples are wrapped
T_ERROR = "error"

# ---- Roles as spelled on the wire ----
ROLE_PRODUCER = "producer"
ROLE_SUBSCRIBER = "subscriber"

# ---- Error codes ----
ERR_BAD_JSON = "BAD_JSON"
ERR_BAD_REGISTER = "BAD_REGISTER"
ERR_HANDSHAKE_TIMEOUT = "HANDSHAKE_TIMEOUT"

# ---- Close codes / reasons ----
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_POLICY_VIOLATION = 1008

REASON_SUPERSEDED = "superseded"
REASON_SHUTDOWN = "server shutting down"

# Minimal shape docs (for human readers)
# Sample:      { "C": 450, "PH": 7.1, "T": 21.5 }
# Wrapped:     { "type": "data", "payload": <sample> }
# Register:    { "type": "register", "role": "producer" | "subscriber" }
# Registered:  { "type": "registered", "role": <same role> }
# Error:       { "type": "error", "code": <ERR_*>, "message": "..." }
