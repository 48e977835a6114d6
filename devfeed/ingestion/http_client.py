"""
Retrying HTTP transport shared by the source clients.

Provides:
- APIKeyRotator: hands out tokens from a comma-separated list in turn
- RetryConfig: attempt budget and backoff curve
- HTTPClient: httpx wrapper that retries 429, 5xx and transport failures
- HTTPClientError and subclasses: the typed failures every client raises

Source clients own the domain side (endpoints, normalization, caching); this
module only decides whether a request succeeded, failed for good, or should
be tried again.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from devfeed.ingestion.base_client import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class APIKeyRotator:
    """
    Cycles through a fixed set of API tokens.

    Example:
        rotator = APIKeyRotator.from_env_var("tok_a,tok_b")
        await rotator.get_key()  # "tok_a"
        await rotator.get_key()  # "tok_b"
    """

    keys: list[str]
    _position: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_env_var(cls, value: str | None) -> APIKeyRotator | None:
        """Build a rotator from a comma-separated setting, or None if it holds no token."""
        keys = [part.strip() for part in (value or "").split(",")]
        keys = [key for key in keys if key]
        return cls(keys=keys) if keys else None

    async def get_key(self) -> str:
        async with self._lock:
            key = self.keys[self._position]
            self._position = (self._position + 1) % len(self.keys)
        return key

    @property
    def key_count(self) -> int:
        return len(self.keys)


@dataclass
class RetryConfig:
    """
    Attempt budget and backoff for retryable failures.

    `max_attempts` includes the first request: the default of 3 allows two
    retries. The wait after failed attempt `n` (0-indexed) is
    `min(max_backoff_seconds, base_delay * 2**n)` plus up to
    `jitter_factor` of that value at random.
    """

    max_attempts: int = 3
    max_backoff_seconds: float = 30.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        """429 and every 5xx are worth retrying; other 4xx are final."""
        return status_code == 429 or status_code >= 500


class HTTPClientError(Exception):
    """
    A request to a source failed.

    Attributes:
        status_code: HTTP status, or 0 when no response arrived
        source: Id of the source the request was for
        retryable: Whether the failure was transient
        response_body: Body text of the failing response, if any
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        source: str | None = None,
        retryable: bool = False,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.source = source
        self.retryable = retryable
        self.response_body = response_body

    @property
    def status(self) -> int:
        return self.status_code


class RateLimitError(HTTPClientError):
    """The source kept answering 429 until the attempt budget ran out."""


class ItemNotFoundError(HTTPClientError):
    """The source answered, but has no record with the requested id."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message, status_code=404, source=source, retryable=False)


class HTTPClient:
    """
    GET-only httpx client with retries, token rotation and rate limiting.

    The underlying connection pool is created on first use and released by
    `aclose()` or by leaving the async context.

    Example:
        async with HTTPClient("github", RetryConfig(max_attempts=3)) as http:
            response = await http.get(
                "https://api.github.com/search/repositories",
                params={"q": "created:>2024-01-01"},
                api_key_rotator=rotator,
                api_key_header="Authorization",
                api_key_prefix="token ",
            )
    """

    def __init__(
        self,
        source: str,
        retry_config: RetryConfig | None = None,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ):
        """
        Args:
            source: Source id stamped on every error raised
            retry_config: Retry policy (defaults to RetryConfig())
            timeout: Per-request timeout in seconds
            headers: Headers sent with every request
        """
        self.source = source
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HTTPClient:
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self.headers)
        return self._client

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        rate_limiter: RateLimiter | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_header: str | None = None,
        api_key_prefix: str = "",
    ) -> httpx.Response:
        """
        GET `url`, retrying transient failures.

        Each attempt takes a fresh rate-limiter slot and, when a rotator is
        given, the next token in `api_key_header`.

        Raises:
            HTTPClientError: Non-retryable status, or a transient failure
                that outlasted the attempt budget
            RateLimitError: 429 on every attempt
        """
        client = self._ensure_client()
        attempts = max(1, self.retry_config.max_attempts)
        attempt = 0

        while True:
            attempt += 1
            request_headers = dict(headers or {})
            if api_key_rotator is not None and api_key_header:
                token = await api_key_rotator.get_key()
                request_headers[api_key_header] = f"{api_key_prefix}{token}"
            if rate_limiter is not None:
                await rate_limiter.acquire()

            try:
                response = await client.get(
                    url,
                    params=params or None,
                    headers=request_headers or None,
                )
            except httpx.TransportError as e:
                if attempt < attempts:
                    await self._wait_before_retry(attempt, attempts, url, type(e).__name__)
                    continue
                raise HTTPClientError(
                    f"Request to {url} failed after {attempt} attempts: "
                    f"{type(e).__name__}: {e}",
                    source=self.source,
                    retryable=True,
                ) from e

            status = response.status_code
            if self.retry_config.is_retryable_status(status):
                if attempt < attempts:
                    await self._wait_before_retry(attempt, attempts, url, f"status {status}")
                    continue
                raise self._exhausted_error(response, url, attempt)

            if status >= 400:
                raise HTTPClientError(
                    f"Request failed with status {status} for {url}",
                    status_code=status,
                    source=self.source,
                    retryable=False,
                    response_body=response.text,
                )
            return response

    async def _wait_before_retry(self, attempt: int, attempts: int, url: str, reason: str) -> None:
        backoff = self.retry_config.calculate_backoff(attempt - 1)
        logger.warning(
            f"[{self.source}] {reason} from {url} on attempt {attempt}/{attempts}, "
            f"retrying in {backoff:.2f}s"
        )
        await asyncio.sleep(backoff)

    def _exhausted_error(self, response: httpx.Response, url: str, attempts: int) -> HTTPClientError:
        status = response.status_code
        if status == 429:
            error_cls, reason = RateLimitError, "Rate limit exceeded"
        else:
            error_cls, reason = HTTPClientError, f"Request failed with status {status}"
        return error_cls(
            f"{reason} for {url} after {attempts} attempts",
            status_code=status,
            source=self.source,
            retryable=True,
            response_body=response.text,
        )
