"""Codec module - status payload decoding."""

from ..errors import DecodeError
from .cursor import ByteCursor
from .decoder import (
    GAMEMODES,
    MIN_PAYLOAD_SIZE,
    ServerRecord,
    decode_hex,
    decode_status,
    encode_status,
    rewrite_color_tags,
)

__all__ = [
    "ByteCursor",
    "DecodeError",
    "GAMEMODES",
    "MIN_PAYLOAD_SIZE",
    "ServerRecord",
    "decode_hex",
    "decode_status",
    "encode_status",
    "rewrite_color_tags",
]
