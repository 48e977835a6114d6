"""
Aggregation service - merges items from every enabled source.

Fans out to the source clients concurrently, tolerates individual source
failures, filters and sorts the merged items, and caches the result keyed by
the resolved source set and filter.

Features:
- Settle-all fan-out: one source's failure never cancels or delays another
- Per-source error table surfaced as data, never raised
- Aggregate TTL cache, cleared whenever a source is toggled
- Coalescing of concurrent identical requests
"""

import asyncio
import json
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from functools import partial
from typing import Any

import structlog

from devfeed.aggregation.config import AggregationConfig
from devfeed.aggregation.schemas import (
    FeedFilter,
    SourceErrorRecord,
    SourceRegistration,
    default_registrations,
)
from devfeed.config.settings import Settings, get_settings
from devfeed.ingestion.base_client import SourceClient
from devfeed.ingestion.cache import ResponseCache
from devfeed.ingestion.devto_client import DevToClient
from devfeed.ingestion.github_client import GitHubClient
from devfeed.ingestion.hackernews_client import HackerNewsClient
from devfeed.ingestion.http_client import APIKeyRotator, RetryConfig
from devfeed.ingestion.schemas import Item
from devfeed.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


class UnknownSourceError(KeyError):
    """Raised when toggling a source id that is not registered."""


@dataclass
class _SourceOutcome:
    source_id: str
    items: list[Item] | None = None
    error: Exception | None = None


class FeedAggregator:
    """
    Coordinator that owns the source registry, error table and aggregate cache.

    Usage:
        async with FeedAggregator.from_settings() as aggregator:
            items = await aggregator.get_aggregated(FeedFilter(search="rust"))
            for record in aggregator.get_source_errors():
                print(record.source_id, record.message)
    """

    def __init__(
        self,
        clients: Iterable[SourceClient],
        sources: list[SourceRegistration] | None = None,
        config: AggregationConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the aggregator.

        Args:
            clients: One client per source, keyed by their source_id
            sources: Registry entries (defaults to one enabled entry per client)
            config: Aggregation settings (or load from environment)
            clock: Time source for the aggregate cache and error records

        Raises:
            ValueError: If a registration has no matching client
        """
        self._config = config or AggregationConfig()
        self._clock = clock
        self._clients: dict[str, SourceClient] = {
            client.source_id.value: client for client in clients
        }

        if sources is None:
            sources = [
                SourceRegistration(id=source_id, display_name=client.display_name)
                for source_id, client in self._clients.items()
            ]
        missing = [reg.id for reg in sources if reg.id not in self._clients]
        if missing:
            raise ValueError(f"No client registered for sources: {missing}")
        self._sources = [
            SourceRegistration(reg.id, reg.display_name, reg.enabled) for reg in sources
        ]

        self._cache = ResponseCache(ttl_seconds=self._config.cache_ttl_seconds, clock=clock)
        self._source_errors: dict[str, SourceErrorRecord] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        # Bumped on every toggle so in-flight results for an old registry are not cached
        self._generation = 0
        self._metrics = get_metrics()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        config: AggregationConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "FeedAggregator":
        """Build an aggregator with the three built-in provider clients."""
        settings = settings or get_settings()
        retry_config = RetryConfig(
            max_attempts=settings.max_http_attempts,
            base_delay=settings.http_retry_base_delay,
            max_backoff_seconds=settings.max_backoff_seconds,
        )
        common: dict[str, Any] = {
            "retry_config": retry_config,
            "timeout": settings.http_timeout_seconds,
            "cache_ttl_seconds": settings.cache_ttl_seconds,
            "clock": clock,
        }

        clients: list[SourceClient] = [
            HackerNewsClient(rate_limit=settings.hackernews_rate_limit, **common),
            DevToClient(rate_limit=settings.devto_rate_limit, **common),
            GitHubClient(
                rate_limit=settings.github_rate_limit,
                api_key_rotator=APIKeyRotator.from_env_var(settings.github_api_keys),
                **common,
            ),
        ]
        return cls(clients, sources=default_registrations(), config=config, clock=clock)

    # ── Registry ────────────────────────────────────────────────

    def get_sources(self) -> list[SourceRegistration]:
        """Snapshot of the registry; mutating it does not affect the aggregator."""
        return [SourceRegistration(s.id, s.display_name, s.enabled) for s in self._sources]

    @property
    def generation(self) -> int:
        """Registry version, bumped by every `set_source_enabled` call."""
        return self._generation

    def enabled_sources(self) -> list[str]:
        return [s.id for s in self._sources if s.enabled]

    def set_source_enabled(self, source_id: str, enabled: bool) -> None:
        """
        Enable or disable a source and drop every cached aggregate.

        Raises:
            UnknownSourceError: If `source_id` is not registered
        """
        registration = next((s for s in self._sources if s.id == source_id), None)
        if registration is None:
            raise UnknownSourceError(source_id)

        registration.enabled = enabled
        self._cache.clear()
        # Aggregations started before the toggle can no longer be joined
        self._inflight.clear()
        self._generation += 1
        logger.info("Source toggled", source=source_id, enabled=enabled)

    # ── Error table ─────────────────────────────────────────────

    def get_source_error(self, source_id: str) -> str | None:
        """Message of the source's last failure, unless cleared or aged out."""
        record = self._live_error(source_id)
        return record.message if record else None

    def get_source_errors(self) -> list[SourceErrorRecord]:
        """Current error records in registry order."""
        records = (self._live_error(s.id) for s in self._sources)
        return [record for record in records if record is not None]

    def _live_error(self, source_id: str) -> SourceErrorRecord | None:
        record = self._source_errors.get(source_id)
        if record is None:
            return None
        if self._clock() - record.timestamp > self._config.source_error_max_age_seconds:
            del self._source_errors[source_id]
            return None
        return record

    def _record_error(self, source_id: str, error: Exception) -> None:
        message = str(error) or type(error).__name__
        self._source_errors[source_id] = SourceErrorRecord(
            source_id=source_id,
            message=message,
            timestamp=self._clock(),
        )
        self._metrics.record_source_error(source_id, type(error).__name__)
        logger.warning(
            "Source fetch failed",
            source=source_id,
            error_type=type(error).__name__,
            error=message,
        )

    # ── Aggregation ─────────────────────────────────────────────

    @staticmethod
    def cache_key(source_ids: Iterable[str], feed_filter: FeedFilter) -> str:
        return json.dumps(
            {
                "sources": sorted(source_ids),
                "search": feed_filter.search or "",
                "tags": sorted(feed_filter.tags),
            },
            sort_keys=True,
        )

    def resolve_sources(self, feed_filter: FeedFilter) -> list[str]:
        """
        Source ids a filter selects, in registry order.

        An explicit `sources` set wins over the enabled flags; ids that are not
        registered are skipped.
        """
        if feed_filter.sources is None:
            return self.enabled_sources()

        unknown = feed_filter.sources - self._clients.keys()
        if unknown:
            logger.warning("Ignoring unknown sources in filter", sources=sorted(unknown))
        return [s.id for s in self._sources if s.id in feed_filter.sources]

    async def get_aggregated(self, feed_filter: FeedFilter | None = None) -> list[Item]:
        """
        Merged, filtered, newest-first items from the selected sources.

        Source failures are recorded in the error table and contribute no
        items; they are never raised. Only a failure in the aggregator's own
        logic propagates.
        """
        feed_filter = feed_filter or FeedFilter()
        source_ids = self.resolve_sources(feed_filter)
        if not source_ids:
            logger.debug("No sources selected, returning empty feed")
            return []

        key = self.cache_key(source_ids, feed_filter)
        entry = self._cache.get(key)
        self._metrics.record_cache("aggregate", hit=entry is not None)
        if entry is not None:
            logger.debug("Returning cached feed", sources=source_ids)
            return list(entry.payload)

        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(
                self._aggregate(key, source_ids, feed_filter, self._generation)
            )
            self._inflight[key] = future
            future.add_done_callback(partial(self._forget_inflight, key))
        else:
            logger.debug("Joining in-flight aggregation", sources=source_ids)

        items = await asyncio.shield(future)
        return list(items)

    def _forget_inflight(self, key: str, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # Mark the exception as retrieved when every waiter went away
            future.exception()

    async def _aggregate(
        self,
        key: str,
        source_ids: list[str],
        feed_filter: FeedFilter,
        generation: int,
    ) -> tuple[Item, ...]:
        outcomes = await asyncio.gather(
            *(self._fetch_source(source_id) for source_id in source_ids)
        )

        merged: list[Item] = []
        seen: set[tuple] = set()
        failed: list[str] = []
        for outcome in outcomes:
            if outcome.error is not None:
                self._record_error(outcome.source_id, outcome.error)
                failed.append(outcome.source_id)
                continue

            self._source_errors.pop(outcome.source_id, None)
            for item in outcome.items or []:
                if item.key in seen:
                    continue
                seen.add(item.key)
                merged.append(item)

        items = self._apply_filter(merged, feed_filter)
        # sorted() is stable, so ties keep source-fetch order
        items = tuple(sorted(items, key=lambda item: item.timestamp, reverse=True))

        if generation == self._generation:
            self._cache.set(key, items)
        else:
            logger.info("Sources changed during fetch, result not cached", sources=source_ids)

        self._metrics.set_aggregate_size(len(items))
        logger.info(
            "Aggregated feed",
            sources=source_ids,
            items=len(items),
            failed_sources=failed,
        )
        return items

    async def _fetch_source(self, source_id: str) -> _SourceOutcome:
        """Fetch one source, capturing any failure instead of raising it."""
        client = self._clients[source_id]
        timeout = self._config.fetch_timeout_seconds
        start_time = time.monotonic()

        try:
            fetch = client.fetch_latest(self._config.fetch_limit)
            if timeout is not None:
                items = await asyncio.wait_for(fetch, timeout)
            else:
                items = await fetch
        except asyncio.TimeoutError as e:
            if timeout is None:
                return _SourceOutcome(source_id=source_id, error=e)
            error = TimeoutError(f"{client.display_name} did not respond within {timeout}s")
            return _SourceOutcome(source_id=source_id, error=error)
        except Exception as e:
            return _SourceOutcome(source_id=source_id, error=e)
        finally:
            self._metrics.record_fetch_latency(source_id, time.monotonic() - start_time)

        logger.debug("Source fetched", source=source_id, items=len(items))
        return _SourceOutcome(source_id=source_id, items=items)

    @staticmethod
    def _apply_filter(items: list[Item], feed_filter: FeedFilter) -> list[Item]:
        if feed_filter.search:
            items = [item for item in items if item.matches_search(feed_filter.search)]
        if feed_filter.tags:
            items = [item for item in items if item.matches_tags(feed_filter.tags)]
        return items

    # ── Maintenance ─────────────────────────────────────────────

    def clear_cache(self) -> None:
        self._cache.clear()

    def sweep_expired(self) -> dict[str, int]:
        """
        Delete expired aggregate entries, client cache entries and aged error
        records. Returns removal counts keyed by "aggregate", each source id
        and "errors".
        """
        removed = {"aggregate": self._cache.clear_expired()}
        for source_id, client in self._clients.items():
            removed[source_id] = client.clear_expired_cache()

        before = len(self._source_errors)
        for source_id in list(self._source_errors):
            self._live_error(source_id)
        removed["errors"] = before - len(self._source_errors)

        logger.debug("Swept expired cache entries", **removed)
        return removed

    async def aclose(self) -> None:
        """Close every client's HTTP connections."""
        await asyncio.gather(*(client.aclose() for client in self._clients.values()))

    async def __aenter__(self) -> "FeedAggregator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
