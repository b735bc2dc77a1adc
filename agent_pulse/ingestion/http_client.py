"""
HTTP infrastructure layer with retry logic.

Provides:
- HTTPClientError / RateLimitError: Failures surfaced to source clients
- HTTPClient: Async httpx client whose requests run under a RetryPolicy

This layer separates HTTP concerns (retries, backoff, status mapping) from
domain logic (crawler runs, feed entries, papers) in the source clients.
"""

import logging
from typing import Any

import httpx

from agent_pulse.queues.backoff import OutcomeKind, RetryPolicy

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
)


class HTTPClientError(Exception):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when rate limit is hit and all retries exhausted."""

    pass


def is_retryable_status(status_code: int | None) -> bool:
    """429 and the gateway-style 5xx codes are worth another attempt."""
    return status_code in RETRYABLE_STATUSES


def is_retryable_error(exc: Exception) -> bool:
    """Classify an exception raised by a single request attempt."""
    if isinstance(exc, HTTPClientError):
        return is_retryable_status(exc.status_code)
    return isinstance(exc, RETRYABLE_EXCEPTIONS)


class HTTPClient:
    """
    Async HTTP client with automatic retry.

    Features:
    - Exponential backoff on 429, 5xx status codes
    - Retry on timeout/connection errors
    - Context manager for proper resource cleanup

    Example:
        policy = RetryPolicy(max_retries=3)
        async with HTTPClient(policy, base_url="https://api.apify.com/v2") as client:
            response = await client.get("/actor-runs/abc", params={"token": token})
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        base_url: str = "",
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_policy: Retry behavior. Uses RetryPolicy defaults if None.
            timeout: Request timeout in seconds.
            base_url: Prefix for relative request URLs.
            headers: Headers sent with every request.
        """
        self.retry_policy = retry_policy or RetryPolicy()
        self.timeout = timeout
        self.base_url = base_url
        self.headers = dict(headers or {})
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            base_url=self.base_url,
            headers=self.headers,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        """
        Perform POST request with retry logic.

        Raises:
            HTTPClientError: On non-retryable errors or after retries exhausted
            RateLimitError: When rate limited and retries exhausted
        """
        return await self._request_with_retry(
            "POST", url, params=params, headers=headers, json_body=json_body
        )

    async def _send_once(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        json_body: Any,
    ) -> httpx.Response:
        """One attempt; error statuses are raised as HTTPClientError."""
        response = await self._client.request(
            method,
            url,
            params=params or None,
            headers=headers or None,
            json=json_body,
        )
        if response.status_code >= 400:
            raise HTTPClientError(
                f"Request failed with status {response.status_code}",
                status_code=response.status_code,
                response_body=response.text,
            )
        return response

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> httpx.Response:
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        outcome = await self.retry_policy.run(
            lambda: self._send_once(method, url, params, headers, json_body),
            is_retryable=is_retryable_error,
            description=f"{method} {url}",
        )
        if outcome.ok:
            return outcome.value

        error = outcome.error
        if isinstance(error, HTTPClientError):
            if outcome.kind == OutcomeKind.EXHAUSTED:
                exc_type = RateLimitError if error.status_code == 429 else HTTPClientError
                raise exc_type(
                    f"Request to {url} failed with status {error.status_code} "
                    f"after {outcome.attempts} attempts",
                    status_code=error.status_code,
                    response_body=error.response_body,
                ) from error
            raise error

        if isinstance(error, RETRYABLE_EXCEPTIONS):
            raise HTTPClientError(
                f"Request to {url} failed after {outcome.attempts} attempts: {error}"
            ) from error
        # Anything else (programming errors, decode failures) propagates as is
        raise error
