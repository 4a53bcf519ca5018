"""Target data models.

A target is one server address to probe, with the label of the server
group it was listed under.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Target:
    """A single server address to probe."""
    host: str
    port: int
    label: str = ""

    @property
    def key(self) -> str:
        """Correlation key (host:port)."""
        return f"{self.host}:{self.port}"

    def display_key(self, default_port: int) -> str:
        """Report key: bare host for the default port, host:port otherwise."""
        return display_address(self.key, default_port)

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port, "name": self.label}

    def __str__(self) -> str:
        label_str = f" ({self.label})" if self.label else ""
        return f"{self.key}{label_str}"


def split_key(key: str) -> tuple[str, int | None]:
    """Split a host:port key. Returns (key, None) if there is no numeric port."""
    host, sep, port = key.rpartition(":")
    if not sep or not port.isdigit():
        return key, None
    return host, int(port)


def display_address(key: str, default_port: int) -> str:
    """Turn a host:port key into its display form."""
    host, port = split_key(key)
    if port is None or port == default_port:
        return host
    return key


@dataclass
class ValidationError:
    """A single validation error."""
    path: str
    message: str
    severity: str = "error"  # "error" or "warning"


@dataclass
class ValidationResult:
    """Result of target list validation."""
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def __str__(self) -> str:
        if self.valid:
            msg = "Valid"
            if self.warnings:
                msg += f" ({self.warning_count} warnings)"
            return msg
        return f"Invalid: {self.error_count} errors, {self.warning_count} warnings"
