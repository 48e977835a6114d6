"""
Command-line interface for devfeed.

Provides commands to inspect sources and print the aggregated feed.

Usage:
    devfeed sources                      # List known sources
    devfeed fetch --search rust          # Print the aggregated feed once
    devfeed fetch --source github --json # Machine-readable output
    devfeed watch --interval 60          # Auto-refresh until interrupted
"""

import asyncio
import json
import signal

import click

from devfeed.aggregation.schemas import DEFAULT_SOURCES, FeedFilter
from devfeed.aggregation.service import FeedAggregator
from devfeed.config.settings import get_settings
from devfeed.feed.controller import FeedController
from devfeed.feed.formatting import format_relative_time
from devfeed.ingestion.schemas import Item
from devfeed.observability.logging import setup_logging
from devfeed.observability.metrics import get_metrics

SOURCE_CHOICE = click.Choice([source_id for source_id, _ in DEFAULT_SOURCES])


def _build_filter(sources: tuple[str, ...], search: str | None, tags: tuple[str, ...]) -> FeedFilter:
    return FeedFilter(sources=sources or None, search=search, tags=tags)


def _echo_item(item: Item) -> None:
    meta = [item.source.value, format_relative_time(item.timestamp)]
    if item.author:
        meta.append(f"by {item.author}")
    if item.points is not None:
        meta.append(f"{item.points} points")
    if item.reactions is not None:
        meta.append(f"{item.reactions} reactions")
    if item.stars is not None:
        meta.append(f"{item.stars} stars")

    click.echo(click.style(item.title, bold=True))
    click.echo(f"  {' | '.join(meta)}")
    if item.url:
        click.echo(f"  {item.url}")


def _echo_feed(feed: FeedController, limit: int, as_json: bool) -> None:
    items = feed.items[:limit]

    if as_json:
        payload = {
            "items": [item.model_dump(mode="json", by_alias=True) for item in items],
            "sourceErrors": [
                {"sourceId": e.source_id, "message": e.message, "timestamp": e.timestamp}
                for e in feed.source_errors
            ],
        }
        click.echo(json.dumps(payload, indent=2))
        return

    for item in items:
        _echo_item(item)

    click.echo("-" * 40)
    click.echo(f"{len(items)} of {len(feed.items)} items")
    for record in feed.source_errors:
        click.echo(click.style(f"  ✗ {record.source_id}: {record.message}", fg="red"))
    if feed.error is not None:
        click.echo(click.style(f"Refresh failed: {feed.error}", fg="red"))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """devfeed - Aggregated developer news from Hacker News, DEV.to and GitHub."""
    setup_logging("DEBUG" if debug else None)


@main.command()
def sources() -> None:
    """List the known sources."""
    for source_id, display_name in DEFAULT_SOURCES:
        click.echo(f"  {source_id:<12} {display_name}")


@main.command()
@click.option("--source", "sources_", multiple=True, type=SOURCE_CHOICE, help="Only these sources")
@click.option("--search", default=None, help="Case-insensitive text filter")
@click.option("--tag", "tags", multiple=True, help="Keep items carrying any of these tags")
@click.option("--limit", default=30, show_default=True, help="Items to print")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of text")
def fetch(
    sources_: tuple[str, ...],
    search: str | None,
    tags: tuple[str, ...],
    limit: int,
    as_json: bool,
) -> None:
    """Fetch and print the aggregated feed once."""

    async def run() -> FeedController:
        async with FeedController(
            FeedAggregator.from_settings(),
            initial_filter=_build_filter(sources_, search, tags),
        ) as feed:
            return feed

    feed = asyncio.run(run())
    _echo_feed(feed, limit, as_json)

    if feed.error is not None:
        raise SystemExit(1)


@main.command()
@click.option("--interval", default=60.0, show_default=True, help="Seconds between refreshes")
@click.option("--source", "sources_", multiple=True, type=SOURCE_CHOICE, help="Only these sources")
@click.option("--search", default=None, help="Case-insensitive text filter")
@click.option("--tag", "tags", multiple=True, help="Keep items carrying any of these tags")
@click.option("--limit", default=10, show_default=True, help="Items to print per refresh")
@click.option("--metrics/--no-metrics", default=False, help="Enable metrics server")
def watch(
    interval: float,
    sources_: tuple[str, ...],
    search: str | None,
    tags: tuple[str, ...],
    limit: int,
    metrics: bool,
) -> None:
    """Keep the feed refreshed and print it after every interval."""

    async def run() -> None:
        if metrics:
            get_metrics().start_server()

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop.set)

        async with FeedController(
            FeedAggregator.from_settings(),
            initial_filter=_build_filter(sources_, search, tags),
            sweep_interval_seconds=get_settings().cache_ttl_seconds or None,
        ) as feed:
            feed.set_auto_refresh(interval)
            while not stop.is_set():
                _echo_feed(feed, limit, as_json=False)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    continue

    asyncio.run(run())


if __name__ == "__main__":
    main()
