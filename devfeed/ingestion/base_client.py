"""
Base source client and shared functionality for provider clients.

Each provider client must implement fetch_latest() and fetch_by_id(), both
returning normalized Item instances. The base class provides:
- Rate limiting
- Request caching keyed by the fully resolved URL
- Retry and error classification (via HTTPClient)
- Metrics tracking
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import urljoin

import httpx

from devfeed.ingestion.cache import DEFAULT_TTL_SECONDS, ResponseCache
from devfeed.ingestion.http_client import (
    APIKeyRotator,
    HTTPClient,
    HTTPClientError,
    RetryConfig,
)
from devfeed.ingestion.schemas import Item, SourceId
from devfeed.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 100


@dataclass
class RateLimiter:
    """
    Per-client token bucket.

    Holds up to `rate` tokens and regains them at `rate` per minute, so a
    fresh client can burst a full minute's budget and then settles to a
    steady pace.
    """

    rate: int  # requests per minute
    _tokens: float = field(init=False)
    _refilled_at: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.rate)
        self._refilled_at = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        per_second = self.rate / 60.0
        self._tokens = min(float(self.rate), self._tokens + (now - self._refilled_at) * per_second)
        self._refilled_at = now

    async def acquire(self) -> None:
        """Take one token, sleeping until it has accrued if the bucket is empty."""
        async with self._lock:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return

            delay = (1 - self._tokens) * 60.0 / self.rate
            logger.debug(f"Rate limit reached, sleeping {delay:.2f}s")
            await asyncio.sleep(delay)
            # The token that accrued while sleeping is spent by this call
            self._tokens = 0.0
            self._refilled_at = time.monotonic()


@dataclass
class ClientStats:
    """Running request counters for a source client."""

    requests: int = 0
    cache_hits: int = 0
    errors: int = 0


def clamp_limit(limit: int) -> int:
    """Clamp a requested item count into the supported range."""
    return max(MIN_LIMIT, min(MAX_LIMIT, int(limit)))


def parse_iso_timestamp(value: str) -> float:
    """Parse ISO format timestamp (with Z suffix) to seconds since epoch."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()


class SourceClient(ABC):
    """
    Abstract base class for provider clients.

    Subclasses must implement:
        - source_id: SourceId enum value
        - display_name: Human-readable provider name
        - base_url: Root of the provider's REST API
        - fetch_latest(): Newest/top items, normalized
        - fetch_by_id(): One item, normalized

    The base class handles:
        - Rate limiting (via RateLimiter, one per instance)
        - Response caching (via ResponseCache, one per instance)
        - Retries and error classification (via HTTPClient)
        - Logging and metrics

    Every instance owns its cache and limiter; nothing is shared between
    clients.
    """

    base_url: str = ""

    def __init__(
        self,
        rate_limit: int = 60,
        retry_config: RetryConfig | None = None,
        timeout: float = 10.0,
        cache_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        headers: dict[str, str] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
    ):
        """
        Initialize client with rate limiting and caching.

        Args:
            rate_limit: Maximum requests per minute
            retry_config: Retry/backoff policy for retryable failures
            timeout: Per-request timeout in seconds
            cache_ttl_seconds: Lifetime of cached normalized responses
            clock: Time source for the response cache
            headers: Default headers for every request
            api_key_rotator: Optional rotating credentials
        """
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._cache = ResponseCache(ttl_seconds=cache_ttl_seconds, clock=clock)
        self._http = HTTPClient(
            source=self.source_id.value,
            retry_config=retry_config,
            timeout=timeout,
            headers={"Accept": "application/json", **(headers or {})},
        )
        self._api_key_rotator = api_key_rotator
        self._clock = clock
        self._stats = ClientStats()
        self._metrics = get_metrics()

    @property
    @abstractmethod
    def source_id(self) -> SourceId:
        """Return the provider this client handles."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    def name(self) -> str:
        return f"{self.source_id.value}_client"

    @property
    def stats(self) -> ClientStats:
        return self._stats

    @abstractmethod
    async def fetch_latest(self, limit: int = 30) -> list[Item]:
        """
        Fetch the provider's newest or most relevant items.

        `limit` is clamped into 1..100.
        """
        ...

    @abstractmethod
    async def fetch_by_id(self, item_id: int | str) -> Item:
        """Fetch a single item by its provider id."""
        ...

    def build_url(self, endpoint: str, params: dict[str, Any] | None = None) -> str:
        """
        Resolve `endpoint` against the base URL with sorted query parameters.

        The result doubles as the cache key, so identical requests map to the
        same key regardless of parameter order.
        """
        query = sorted(
            (key, str(value)) for key, value in (params or {}).items() if value is not None
        )
        return str(httpx.URL(urljoin(self.base_url, endpoint), params=query))

    async def _get_json(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        transform: Callable[[Any], Any] | None = None,
    ) -> Any:
        """
        GET `endpoint`, returning the transformed payload.

        On a fresh cache hit the stored (already transformed) payload is
        returned without a network call. Otherwise a rate-limited, retried
        request is made and the transformed result is cached.

        Raises:
            HTTPClientError: On request failure, an undecodable body, or a
                payload the transform cannot handle
        """
        url = self.build_url(endpoint, params)

        entry = self._cache.get(url)
        self._metrics.record_cache("source", hit=entry is not None)
        if entry is not None:
            self._stats.cache_hits += 1
            return entry.payload

        self._stats.requests += 1
        try:
            response = await self._http.get(
                url,
                rate_limiter=self._rate_limiter,
                api_key_rotator=self._api_key_rotator,
                api_key_header="Authorization" if self._api_key_rotator else None,
                api_key_prefix="token ",
            )
        except HTTPClientError:
            self._stats.errors += 1
            self._metrics.record_request(self.source_id.value, "error")
            raise
        self._metrics.record_request(self.source_id.value, "success")

        try:
            data = response.json()
        except ValueError as e:
            self._stats.errors += 1
            raise HTTPClientError(
                f"Malformed response body from {url}: {e}",
                status_code=response.status_code,
                source=self.source_id.value,
                retryable=False,
                response_body=response.text,
            ) from e

        if transform is not None:
            try:
                data = transform(data)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                self._stats.errors += 1
                raise HTTPClientError(
                    f"Unexpected payload from {url}: {e}",
                    status_code=response.status_code,
                    source=self.source_id.value,
                    retryable=False,
                ) from e

        self._cache.set(url, data)
        return data

    def clear_expired_cache(self) -> int:
        """Drop expired response cache entries. Returns the number removed."""
        removed = self._cache.clear_expired()
        if removed:
            logger.debug(f"{self.name} swept {removed} expired cache entries")
        return removed

    def clear_cache(self) -> None:
        self._cache.clear()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SourceClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
