"""Retry policy for server list downloads.

A mirror is retried with exponential backoff on connection errors,
timeouts and retryable HTTP statuses; anything else moves the client on
to the next mirror.
"""

from dataclasses import dataclass, field

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


@dataclass
class RetryPolicy:
    """Per-mirror retry policy with exponential backoff."""
    max_retries: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 2.0
    max_delay: float = 30.0
    retry_statuses: frozenset[int] = field(default=RETRYABLE_STATUSES)

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """Whether a response with this status earns another attempt (0-indexed)."""
        return status_code in self.retry_statuses and attempt < self.max_retries

    def get_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        delay = self.initial_delay * (self.backoff_factor ** attempt)
        return min(delay, self.max_delay)


def default_retry_policy() -> RetryPolicy:
    """3 retries per mirror, 1s initial delay, 2x backoff, 30s max."""
    return RetryPolicy()


def no_retry_policy() -> RetryPolicy:
    """Fail over to the next mirror on the first error."""
    return RetryPolicy(max_retries=0)
