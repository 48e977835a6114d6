"""
Feed controller - the single seam between the UI layer and the aggregator.

Holds the state a UI renders (items, loading flag, fatal error, per-source
errors, source registry) and exposes the commands it issues (refresh,
toggle a source, auto-refresh on a timer). One refresh cycle runs at a time
per controller.
"""

import asyncio
from typing import Any

import structlog

from devfeed.aggregation.schemas import FeedFilter, SourceErrorRecord, SourceRegistration
from devfeed.aggregation.service import FeedAggregator
from devfeed.ingestion.schemas import Item

logger = structlog.get_logger(__name__)


class FeedController:
    """
    Stateful binding over a FeedAggregator.

    Usage:
        async with FeedController(aggregator) as feed:
            feed.set_auto_refresh(60)
            await feed.set_source_enabled("github", False)
            render(feed.items, feed.source_errors)

    Entering the context performs the initial refresh and starts the cache
    sweeper; leaving it cancels every scheduled task and closes the
    aggregator.
    """

    def __init__(
        self,
        aggregator: FeedAggregator,
        initial_filter: FeedFilter | None = None,
        sweep_interval_seconds: float | None = None,
    ):
        """
        Initialize the controller.

        Args:
            aggregator: Aggregator whose results this controller exposes
            initial_filter: Filter used by refreshes that do not pass one
            sweep_interval_seconds: Period of the expired-entry sweep
                (None disables the sweeper)
        """
        self._aggregator = aggregator
        self._filter = initial_filter or FeedFilter()
        self._sweep_interval = sweep_interval_seconds

        self._items: list[Item] = []
        self._is_loading = False
        self._error: Exception | None = None

        self._inflight: tuple[asyncio.Task, FeedFilter, int] | None = None
        self._auto_refresh_task: asyncio.Task | None = None
        self._auto_refresh_interval: float | None = None
        self._sweep_task: asyncio.Task | None = None

    # ── State ───────────────────────────────────────────────────

    @property
    def items(self) -> list[Item]:
        return list(self._items)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def error(self) -> Exception | None:
        """Error from the last refresh if the whole cycle failed, else None."""
        return self._error

    @property
    def source_errors(self) -> list[SourceErrorRecord]:
        return self._aggregator.get_source_errors()

    @property
    def sources(self) -> list[SourceRegistration]:
        return self._aggregator.get_sources()

    @property
    def active_filter(self) -> FeedFilter:
        return self._filter

    @property
    def auto_refresh_interval(self) -> float | None:
        return self._auto_refresh_interval

    # ── Commands ────────────────────────────────────────────────

    async def refresh(self, feed_filter: FeedFilter | None = None) -> list[Item]:
        """
        Re-run aggregation and update the exposed state.

        A call made while a cycle is in flight joins it when the filter and
        the source registry are unchanged, otherwise waits for it to finish
        and then runs. Two cycles
        never overlap. A fatal aggregation error is stored in `error` rather
        than raised.

        Args:
            feed_filter: Filter for this and subsequent refreshes (defaults
                to the active filter)

        Returns:
            The items exposed after the refresh
        """
        requested = feed_filter if feed_filter is not None else self._filter

        while self._inflight is not None:
            task, active, generation = self._inflight
            if active == requested and generation == self._aggregator.generation:
                logger.debug("Joining in-flight refresh")
                return await asyncio.shield(task)
            await asyncio.wait([task])

        task = asyncio.ensure_future(self._run_refresh(requested))
        self._inflight = (task, requested, self._aggregator.generation)
        return await asyncio.shield(task)

    async def _run_refresh(self, feed_filter: FeedFilter) -> list[Item]:
        self._filter = feed_filter
        self._is_loading = True
        self._error = None
        try:
            self._items = await self._aggregator.get_aggregated(feed_filter)
        except Exception as e:
            self._error = e
            logger.error("Feed refresh failed", error=str(e), exc_info=True)
        finally:
            self._is_loading = False
            self._inflight = None
        return list(self._items)

    async def set_source_enabled(self, source_id: str, enabled: bool) -> list[Item]:
        """Toggle a source, then refresh with the active filter."""
        self._aggregator.set_source_enabled(source_id, enabled)
        return await self.refresh()

    def set_auto_refresh(self, interval_seconds: float | None) -> None:
        """
        Refresh every `interval_seconds`, or stop auto-refresh with None.

        Any previously scheduled timer is cancelled first, so at most one
        timer exists. Must be called from within a running event loop when
        enabling.
        """
        if self._auto_refresh_task is not None:
            self._auto_refresh_task.cancel()
            self._auto_refresh_task = None
        self._auto_refresh_interval = None

        if interval_seconds is None:
            logger.debug("Auto-refresh disabled")
            return
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._auto_refresh_interval = interval_seconds
        self._auto_refresh_task = asyncio.get_running_loop().create_task(
            self._auto_refresh_loop(interval_seconds),
            name="feed_auto_refresh",
        )
        logger.debug("Auto-refresh enabled", interval_seconds=interval_seconds)

    async def _auto_refresh_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.refresh()

    async def _sweep_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self._aggregator.sweep_expired()

    # ── Lifecycle ───────────────────────────────────────────────

    async def start(self) -> list[Item]:
        """Start the sweeper (if configured) and run the initial refresh."""
        if self._sweep_interval and self._sweep_task is None:
            self._sweep_task = asyncio.get_running_loop().create_task(
                self._sweep_loop(self._sweep_interval),
                name="feed_cache_sweep",
            )
        return await self.refresh()

    async def aclose(self) -> None:
        """Cancel scheduled tasks, wait for them to stop and close the aggregator."""
        tasks = [t for t in (self._auto_refresh_task, self._sweep_task) if t is not None]
        self._auto_refresh_task = None
        self._auto_refresh_interval = None
        self._sweep_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        # Let a refresh that is still running finish before its clients close
        if self._inflight is not None:
            await asyncio.wait([self._inflight[0]])

        await self._aggregator.aclose()

    async def __aenter__(self) -> "FeedController":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()
