'''
    Wire protocol shared by the sensor, the relay and the dashboards:
    constants in types.py, frame parsing and builders in messages.py.
'''

from .messages import (
    RegisterRequest,
    decode_frame, is_sample, parse_register,
    msg_registered, msg_error, msg_data,
    encode, encode_sample,
)

__all__ = [
    "RegisterRequest",
    "decode_frame", "is_sample", "parse_register",
    "msg_registered", "msg_error", "msg_data",
    "encode", "encode_sample",
]
