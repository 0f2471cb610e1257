"""
HTTP client for ManifestKit.

Wraps a ``requests`` session with urllib3 retries. Only transient failures
(connection errors, read timeouts) of idempotent requests are retried;
non-2xx responses are raised immediately.
"""

import logging
from typing import Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

MANIFEST_TIMEOUT = 15
SEGMENT_TIMEOUT = 30
DEFAULT_RETRIES = 3


class LinearRetry(Retry):
    """Retry policy waiting ``backoff_factor * attempt`` seconds between attempts."""

    def get_backoff_time(self) -> float:
        attempts = len(self.history)
        if attempts == 0:
            return 0
        return self.backoff_factor * attempts


def create_session(
    retries: int = DEFAULT_RETRIES,
    backoff_factor: float = 0.5,
    linear_backoff: bool = False,
    pool_maxsize: int = 10,
) -> requests.Session:
    """
    Create a ``requests`` session with transient-error retries.

    Args:
        retries: Maximum retry attempts per request (default: 3)
        backoff_factor: Backoff factor in seconds (default: 0.5)
        linear_backoff: Wait ``factor * attempt`` instead of exponential backoff
        pool_maxsize: Connection pool size per host

    Returns:
        Configured ``requests.Session``
    """
    retry_class = LinearRetry if linear_backoff else Retry
    retry = retry_class(
        total=retries,
        connect=retries,
        read=retries,
        status=0,
        redirect=None,
        allowed_methods=frozenset(["GET", "HEAD"]),
        backoff_factor=backoff_factor,
        raise_on_status=False,
        respect_retry_after_header=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_maxsize, pool_maxsize=pool_maxsize)

    session = requests.Session()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class HTTPClient:
    """
    Client used to fetch manifests, keys and segments.

    Manifest and key fetches use ``timeout``; segment bodies use
    ``segment_timeout``.
    """

    def __init__(
        self,
        timeout: float = MANIFEST_TIMEOUT,
        segment_timeout: float = SEGMENT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff_factor: float = 0.5,
        linear_backoff: bool = False,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.segment_timeout = segment_timeout
        self.verify_ssl = verify_ssl
        self.session = session or create_session(
            retries=retries,
            backoff_factor=backoff_factor,
            linear_backoff=linear_backoff,
        )

    def _get(self, uri: str, timeout: float) -> requests.Response:
        logger.debug(f"GET {uri}")
        response = self.session.get(uri, timeout=timeout, verify=self.verify_ssl)
        response.raise_for_status()
        return response

    def get_text(self, uri: str, timeout: Optional[float] = None) -> Tuple[str, str]:
        """
        Fetch a textual body (manifest).

        Args:
            uri: Absolute URI to fetch
            timeout: Request timeout in seconds (default: client manifest timeout)

        Returns:
            Tuple of (body text, content-type header value)

        Raises:
            requests.HTTPError: On a non-2xx response
            requests.RequestException: When retries are exhausted
        """
        response = self._get(uri, timeout or self.timeout)
        content_type = response.headers.get("content-type", "")
        if "charset" not in content_type.lower():
            response.encoding = "utf-8"
        return response.text, content_type

    def get_bytes(self, uri: str, timeout: Optional[float] = None) -> bytes:
        """
        Fetch a binary body (key or segment).

        Args:
            uri: Absolute URI to fetch
            timeout: Request timeout in seconds (default: client segment timeout)

        Returns:
            Raw response body
        """
        response = self._get(uri, timeout or self.segment_timeout)
        return response.content

    def close(self) -> None:
        self.session.close()
