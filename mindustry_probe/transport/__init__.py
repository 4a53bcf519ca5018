"""Transport module - server list download."""

from .retry_policy import RetryPolicy, default_retry_policy, no_retry_policy
from .server_list import ServerListClient

__all__ = [
    "RetryPolicy",
    "ServerListClient",
    "default_retry_policy",
    "no_retry_policy",
]
