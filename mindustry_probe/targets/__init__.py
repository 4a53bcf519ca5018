"""Targets module - server list parsing."""

from .schema import (
    Target,
    ValidationError,
    ValidationResult,
    display_address,
    split_key,
)
from .parser import load_targets, parse_address, parse_server_list
from .validator import validate_targets

__all__ = [
    "Target",
    "ValidationError",
    "ValidationResult",
    "display_address",
    "split_key",
    "load_targets",
    "parse_address",
    "parse_server_list",
    "validate_targets",
]
