"""Exception types shared across the probe package."""

from typing import Optional


class ProbeError(Exception):
    """Base class for all mindustry-probe errors."""


class BindError(ProbeError):
    """The local UDP port could not be bound. Fatal to the round."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        super().__init__(f"Cannot bind UDP {host or '*'}:{port}: {reason}")


class SendError(ProbeError):
    """A discovery request could not be sent to one target.

    Only ever logged by the engine, never raised out of a round.
    """

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Send to {key} failed: {reason}")


class DecodeError(ProbeError, ValueError):
    """A status payload could not be decoded.

    Attributes:
        offset: Position in the buffer where decoding failed.
        length: Total length of the buffer.
    """

    def __init__(self, message: str, offset: int = 0, length: int = 0):
        self.offset = offset
        self.length = length
        super().__init__(f"{message} (offset {offset}, buffer length {length})")


class ServerListError(ProbeError):
    """The server list could not be fetched from any mirror."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class ConfigError(ProbeError, ValueError):
    """Invalid configuration file or value."""
