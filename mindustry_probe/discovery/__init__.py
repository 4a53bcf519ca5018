"""Discovery module - UDP status probing."""

from ..errors import BindError, SendError
from .correlator import ReplyCorrelator
from .probe_engine import ProbeEngine
from .replies import Reply, ReplySet

__all__ = [
    "BindError",
    "SendError",
    "ProbeEngine",
    "Reply",
    "ReplyCorrelator",
    "ReplySet",
]
