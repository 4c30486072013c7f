"""
HTTP transport for the Graph API with retry logic.

Provides:
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async GET client that retries throttling, 5xx and connection failures

The Graph API reports throttling two ways: HTTP 429, and HTTP 400 with one
of the rate-limit error codes in the JSON body. Both are retried; any other
4xx is final. Insights reads are idempotent, so retrying inside one call is
safe. Notification delivery does not use this client: it is single-shot.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Application, user, page and custom-audience request limits
GRAPH_RATE_LIMIT_CODES = frozenset({4, 17, 32, 613})

RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Seconds to wait before retry ``attempt`` (0-indexed).

        A server-provided ``Retry-After`` wins over the exponential delay,
        capped at ``max_backoff_seconds``.
        """
        if retry_after is not None:
            return min(retry_after, self.max_backoff_seconds)
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS_CODES


class HTTPClientError(Exception):
    """Raised for final responses or when retries are exhausted."""

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
    """The Graph API kept throttling after all retries."""


def graph_error_code(response: httpx.Response) -> int | None:
    """``error.code`` from a Graph API error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict) or not isinstance(body.get("error"), dict):
        return None
    code = body["error"].get("code")
    return code if isinstance(code, int) else None


def is_throttled(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code == 400 and graph_error_code(response) in GRAPH_RATE_LIMIT_CODES


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Example:
        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            response = await client.get(
                "https://graph.facebook.com/v24.0/act_123/insights",
                params={"level": "ad"},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
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
        GET with retries.

        Raises:
            HTTPClientError: On a final error status or after retries are exhausted
            RateLimitError: When throttling outlasts the retries
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        attempts = self.retry_config.max_retries + 1
        safe_url = _redact(url)

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1

            try:
                response = await self._client.get(url, params=params, headers=headers)
            except RETRYABLE_EXCEPTIONS as e:
                if last_attempt:
                    raise HTTPClientError(
                        f"Request to {safe_url} failed after {attempts} attempts: {type(e).__name__}",
                    ) from e
                await self._backoff(attempt, None, f"{type(e).__name__} from {safe_url}")
                continue

            throttled = is_throttled(response)
            if not throttled and not self.retry_config.is_retryable_status(response.status_code):
                if response.status_code >= 400:
                    raise HTTPClientError(
                        f"{safe_url} returned {response.status_code}",
                        status_code=response.status_code,
                        response_body=response.text,
                    )
                return response

            if last_attempt:
                error_cls = RateLimitError if throttled else HTTPClientError
                raise error_cls(
                    f"{safe_url} returned {response.status_code} after {attempts} attempts",
                    status_code=response.status_code,
                    response_body=response.text,
                )
            await self._backoff(
                attempt, _retry_after(response), f"status {response.status_code} from {safe_url}",
            )

        raise AssertionError("unreachable")

    async def _backoff(self, attempt: int, retry_after: float | None, reason: str) -> None:
        delay = self.retry_config.calculate_backoff(attempt, retry_after)
        logger.warning(
            "Retrying after %s (attempt %d/%d, waiting %.2fs)",
            reason, attempt + 1, self.retry_config.max_retries + 1, delay,
        )
        await asyncio.sleep(delay)


def _redact(url: str) -> str:
    """Drop the query string so access tokens never reach the logs."""
    return url.split("?", 1)[0]
