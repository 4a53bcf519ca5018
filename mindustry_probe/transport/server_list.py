"""HTTP client for the public server list.

Downloads ``servers_v7.json`` from the first mirror that answers. Each
mirror is retried on connection errors, timeouts and retryable statuses
(429 and 5xx gateway errors); other errors move on to the next mirror.
"""

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import requests

from ..config import DEFAULT_MIRRORS, DEFAULT_SERVER_PORT
from ..errors import ServerListError
from ..targets.parser import parse_server_list
from ..targets.schema import Target
from .retry_policy import RetryPolicy, default_retry_policy

logger = logging.getLogger(__name__)


class ServerListClient:
    """Fetches the server list with multi-mirror fallback."""

    def __init__(
        self,
        mirrors: Sequence[str] = DEFAULT_MIRRORS,
        retry_policy: Optional[RetryPolicy] = None,
        request_timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize server list client.

        Args:
            mirrors: URLs tried in order.
            retry_policy: Retry policy per mirror.
            request_timeout: Timeout per request in seconds.
            session: HTTP session to use (default: a new requests.Session).
        """
        if not mirrors:
            raise ValueError("At least one mirror URL is required")
        self.mirrors = list(mirrors)
        self.retry_policy = retry_policy or default_retry_policy()
        self.request_timeout = request_timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def fetch(self) -> Any:
        """Fetch the raw server list JSON.

        Returns:
            Decoded JSON document from the first working mirror.

        Raises:
            ServerListError: If every mirror failed.
        """
        errors: list[str] = []

        for url in self.mirrors:
            try:
                response = self._request_with_retry(url)
                data = response.json()
            except (requests.RequestException, ValueError) as e:
                logger.warning("Mirror %s failed: %s", url, e)
                errors.append(f"{url}: {e}")
                continue

            logger.info("Fetched server list from %s", url)
            return data

        raise ServerListError(
            f"Server list unavailable from {len(self.mirrors)} mirrors",
            errors=errors,
        )

    def fetch_targets(self, default_port: int = DEFAULT_SERVER_PORT) -> list[Target]:
        """Fetch and parse the server list into targets.

        Raises:
            ServerListError: If every mirror failed or the list is malformed.
        """
        data = self.fetch()
        try:
            return parse_server_list(data, default_port=default_port, source="server list")
        except ValueError as e:
            raise ServerListError(f"Malformed server list: {e}") from e

    def download(self, path: Union[str, Path]) -> Path:
        """Fetch the server list and save it to a file.

        Returns:
            Path to the saved file.
        """
        data = self.fetch()
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info("Server list saved to %s", path)
        return path

    def _request_with_retry(self, url: str) -> requests.Response:
        """GET a URL with retry logic.

        Raises:
            requests.HTTPError: On an error status, once retries are spent.
            requests.ConnectionError: After all retries exhausted.
            requests.Timeout: After all retries exhausted.
        """
        attempt = 0
        while True:
            try:
                response = self._session.get(url, timeout=self.request_timeout)
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt >= self.retry_policy.max_retries:
                    raise
                self._wait(attempt, url, str(e))
                attempt += 1
                continue

            if self.retry_policy.should_retry(response.status_code, attempt):
                self._wait(attempt, url, f"HTTP {response.status_code}")
                attempt += 1
                continue

            response.raise_for_status()
            return response

    def _wait(self, attempt: int, url: str, reason: str) -> None:
        delay = self.retry_policy.get_delay(attempt)
        logger.debug("Retrying %s in %.1fs (%s)", url, delay, reason)
        time.sleep(delay)

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
