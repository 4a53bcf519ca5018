"""Decoder for Mindustry server status replies.

A status reply is a flat big-endian buffer of length-prefixed fields:

    u8  name length,  name
    u8  map length,   map
    i32 players
    i32 wave
    i32 version build
    u8  version type length, version type   ("official", "custom", ...)
    u8  gamemode ordinal
    i32 player limit
    i8  description length, description
    u8  mode name length, mode name         (optional, newer servers)

Server-supplied text carries color markup such as ``[scarlet]`` or
``[#ff0000]``; every text field is rewritten to the neutral ``{token}``
form.
"""

import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

from ..errors import DecodeError
from .cursor import ByteCursor

# Shortest buffer that can hold the first length byte and one more byte
MIN_PAYLOAD_SIZE = 2

COLOR_TAG_PATTERN = re.compile(r"\[#?(\w+)\]")

GAMEMODES = ("survival", "sandbox", "attack", "pvp", "editor")


@dataclass(frozen=True)
class ServerRecord:
    """Decoded server status."""
    name: str
    map: str
    description: str
    player_count: int
    wave: int = 0
    version_build: int = 0
    version_type: str = ""
    gamemode: str = ""
    player_limit: int = 0
    mode_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def rewrite_color_tags(text: str) -> str:
    """Rewrite ``[token]`` and ``[#token]`` color tags to ``{token}``."""
    return COLOR_TAG_PATTERN.sub(r"{\1}", text)


def decode_status(payload: bytes) -> ServerRecord:
    """Decode one status reply payload.

    Args:
        payload: Raw datagram bytes.

    Returns:
        ServerRecord with every text field color-rewritten.

    Raises:
        DecodeError: If any field runs past the end of the buffer or a
            length or count is negative.
    """
    if len(payload) < MIN_PAYLOAD_SIZE:
        raise DecodeError("Payload too short", 0, len(payload))

    cursor = ByteCursor(payload)

    name = cursor.read_string("server name")
    map_name = cursor.read_string("map name")

    players_at = cursor.position
    players = cursor.read_i32("player count")
    if players < 0:
        raise DecodeError(f"Negative player count {players}", players_at, cursor.length)
    wave = cursor.read_i32("wave")
    build = cursor.read_i32("version build")

    version_type = cursor.read_string("version type")
    mode_ordinal = cursor.read_u8("gamemode")
    player_limit = cursor.read_i32("player limit")

    description_at = cursor.position
    description_length = cursor.read_i8("description length")
    if description_length < 0:
        raise DecodeError(
            f"Negative description length {description_length}",
            description_at,
            cursor.length,
        )
    description = cursor.read_bytes(description_length, "description").decode(
        "utf-8", errors="replace"
    )

    mode_name = None
    if cursor.remaining:
        try:
            mode_name = rewrite_color_tags(cursor.read_string("mode name"))
        except DecodeError:
            # Trailing field is optional; a torn one is dropped
            mode_name = None

    return ServerRecord(
        name=rewrite_color_tags(name),
        map=rewrite_color_tags(map_name),
        description=rewrite_color_tags(description),
        player_count=players,
        wave=wave,
        version_build=build,
        version_type=version_type,
        gamemode=GAMEMODES[mode_ordinal] if mode_ordinal < len(GAMEMODES) else str(mode_ordinal),
        player_limit=player_limit,
        mode_name=mode_name,
    )


def decode_hex(hex_payload: str) -> ServerRecord:
    """Decode a payload stored as a hex string (raw capture format).

    Raises:
        DecodeError: If the string is not valid hex or the payload is malformed.
    """
    try:
        payload = bytes.fromhex(hex_payload.strip())
    except ValueError as e:
        raise DecodeError(f"Invalid hex payload: {e}", 0, len(hex_payload)) from e
    return decode_status(payload)


def encode_status(record: ServerRecord) -> bytes:
    """Build a status payload from a record.

    Inverse of decode_status for records without color tags. Used to
    produce fixtures and by local test responders.
    """
    def string(value: str, limit: int = 255) -> bytes:
        raw = value.encode("utf-8")[:limit]
        return bytes([len(raw)]) + raw

    mode_index = GAMEMODES.index(record.gamemode) if record.gamemode in GAMEMODES else 0
    parts = [
        string(record.name),
        string(record.map),
        record.player_count.to_bytes(4, "big", signed=True),
        record.wave.to_bytes(4, "big", signed=True),
        record.version_build.to_bytes(4, "big", signed=True),
        string(record.version_type),
        bytes([mode_index]),
        record.player_limit.to_bytes(4, "big", signed=True),
        string(record.description, limit=127),
    ]
    if record.mode_name is not None:
        parts.append(string(record.mode_name))
    return b"".join(parts)
