"""Async HTTP client with retry logic.

httpx + tenacity: connection pooling, exponential backoff on timeouts and
network errors. HTTP status errors are not retried; callers map them.
"""

import logging
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


# Retry configuration
DEFAULT_MAX_RETRIES = 3
DEFAULT_MIN_WAIT = 0.5  # seconds
DEFAULT_MAX_WAIT = 5  # seconds

RETRYABLE_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


class AsyncHttpClient:
    """Async HTTP client with retry logic and connection pooling.

    Usage:
        async with AsyncHttpClient(base_url="http://gateway") as client:
            data = await client.get_json("/games/1")
    """

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 10.0,
        connect_timeout: float = 5.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize HTTP client.

        Args:
            base_url: Prefix for relative request URLs
            timeout: Total request timeout in seconds
            connect_timeout: Connection timeout in seconds
            max_retries: Attempts per request on timeout/network errors
            max_connections: Maximum concurrent connections
            max_keepalive_connections: Maximum keepalive connections
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self._base_url = base_url
        self._timeout = httpx.Timeout(timeout, connect=connect_timeout)
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
        )
        self._max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "AsyncHttpClient":
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            limits=self._limits,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the underlying httpx client."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        return self._client

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=0.5, min=DEFAULT_MIN_WAIT, max=DEFAULT_MAX_WAIT),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """GET request with retry.

        Raises:
            httpx.HTTPStatusError: on 4xx/5xx (not retried)
            httpx.TimeoutException, httpx.NetworkError: after the last attempt
        """
        async for attempt in self._retrying():
            with attempt:
                response = await self.client.get(url, **kwargs)
                response.raise_for_status()
                return response
        raise RuntimeError("unreachable")  # pragma: no cover

    async def get_json(self, url: str, **kwargs) -> Any:
        """GET request returning parsed JSON."""
        response = await self.get(url, **kwargs)
        return response.json()
