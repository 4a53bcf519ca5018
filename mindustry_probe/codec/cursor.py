"""Bounds-checked reader over a byte buffer."""

import struct

from ..errors import DecodeError

_I32 = struct.Struct(">i")


class ByteCursor:
    """Sequential reader that checks the remaining length before every read.

    Every read either returns the requested data and advances, or raises
    DecodeError without moving the position.
    """

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.position = 0

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def _require(self, count: int, what: str) -> None:
        if count < 0:
            raise DecodeError(f"Negative length {count} for {what}", self.position, self.length)
        if count > self.remaining:
            raise DecodeError(
                f"{what} needs {count} bytes, {self.remaining} left",
                self.position,
                self.length,
            )

    def read_u8(self, what: str = "u8") -> int:
        self._require(1, what)
        value = self.data[self.position]
        self.position += 1
        return value

    def read_i8(self, what: str = "i8") -> int:
        value = self.read_u8(what)
        return value - 256 if value > 127 else value

    def read_i32(self, what: str = "i32") -> int:
        """Read a big-endian signed 32-bit integer."""
        self._require(4, what)
        (value,) = _I32.unpack_from(self.data, self.position)
        self.position += 4
        return value

    def read_bytes(self, count: int, what: str = "bytes") -> bytes:
        self._require(count, what)
        chunk = self.data[self.position:self.position + count]
        self.position += count
        return chunk

    def skip(self, count: int, what: str = "skip") -> None:
        self._require(count, what)
        self.position += count

    def read_string(self, what: str = "string") -> str:
        """Read a string prefixed by a 1-byte unsigned length."""
        start = self.position
        length = self.read_u8(f"{what} length")
        try:
            raw = self.read_bytes(length, what)
        except DecodeError:
            self.position = start
            raise
        return raw.decode("utf-8", errors="replace")
