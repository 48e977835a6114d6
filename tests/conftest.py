"""Pytest fixtures for devfeed tests."""

import asyncio
from typing import Any, Callable

import pytest

from devfeed.aggregation.config import AggregationConfig
from devfeed.ingestion.http_client import HTTPClientError, RetryConfig
from devfeed.ingestion.schemas import Item, SourceId

BASE_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = BASE_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSourceClient:
    """
    In-memory stand-in for a SourceClient.

    Returns a fixed item list (or raises `error`) and counts fetch calls.
    When `gate` is set, every fetch waits on it before returning.
    """

    def __init__(
        self,
        source_id: SourceId,
        items: list[Item] | None = None,
        error: Exception | None = None,
        display_name: str | None = None,
    ):
        self.source_id = source_id
        self.display_name = display_name or source_id.value
        self.items = items or []
        self.error = error
        self.gate: asyncio.Event | None = None
        self.fetch_calls = 0
        self.limits: list[int] = []
        self.sweeps = 0
        self.closed = False

    async def fetch_latest(self, limit: int = 30) -> list[Item]:
        self.fetch_calls += 1
        self.limits.append(limit)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.items)

    def clear_expired_cache(self) -> int:
        self.sweeps += 1
        return 0

    async def aclose(self) -> None:
        self.closed = True


def make_item(
    source: SourceId,
    item_id: int | str,
    timestamp: float,
    title: str | None = None,
    **fields: Any,
) -> Item:
    return Item(
        id=item_id,
        source=source,
        title=title or f"{source.value} item {item_id}",
        timestamp=timestamp,
        **fields,
    )


def make_items(source: SourceId, count: int, start: float = BASE_TIME) -> list[Item]:
    """`count` items for `source`, one minute apart, newest first."""
    return [make_item(source, i, start - i * 60) for i in range(count)]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def item_factory() -> Callable[..., Item]:
    return make_item


@pytest.fixture
def items_factory() -> Callable[..., list[Item]]:
    return make_items


@pytest.fixture
def fake_client_factory() -> Callable[..., FakeSourceClient]:
    return FakeSourceClient


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Three attempts without any backoff delay."""
    return RetryConfig(max_attempts=3, base_delay=0.0, jitter_factor=0.0)


@pytest.fixture
def aggregation_config() -> AggregationConfig:
    return AggregationConfig(
        cache_ttl_seconds=300,
        source_error_max_age_seconds=3600,
        fetch_limit=30,
    )


@pytest.fixture
def fake_clients() -> dict[SourceId, FakeSourceClient]:
    """Three healthy sources returning 10, 8 and 5 items."""
    return {
        SourceId.HACKERNEWS: FakeSourceClient(
            SourceId.HACKERNEWS, make_items(SourceId.HACKERNEWS, 10), display_name="Hacker News"
        ),
        SourceId.DEVTO: FakeSourceClient(
            SourceId.DEVTO, make_items(SourceId.DEVTO, 8, start=BASE_TIME - 30), display_name="DEV.to"
        ),
        SourceId.GITHUB: FakeSourceClient(
            SourceId.GITHUB, make_items(SourceId.GITHUB, 5, start=BASE_TIME - 45), display_name="GitHub"
        ),
    }


@pytest.fixture
def service_unavailable() -> HTTPClientError:
    return HTTPClientError(
        "Request failed with status 503 for https://dev.to/api/articles after 3 attempts",
        status_code=503,
        source="devto",
        retryable=True,
    )


# Upstream payload fixtures ------------------------------------------------


@pytest.fixture
def hn_story() -> dict[str, Any]:
    return {
        "id": 8863,
        "type": "story",
        "by": "dhouston",
        "time": 1175714200,
        "title": "My YC app: Dropbox - Throw away your USB drive",
        "url": "http://www.getdropbox.com/u/2/screencast.html",
        "score": 111,
        "descendants": 71,
        "kids": [8952, 9224],
    }


@pytest.fixture
def devto_article() -> dict[str, Any]:
    return {
        "id": 194541,
        "title": "There's a new DEV theme in town for all you 10x hackers out there",
        "description": "A new theme just for you",
        "published_at": "2019-10-24T13:52:17Z",
        "tag_list": ["meta", "changelog", "css"],
        "slug": "there-s-a-new-dev-theme-in-town",
        "path": "/devteam/there-s-a-new-dev-theme-in-town",
        "url": "https://dev.to/devteam/there-s-a-new-dev-theme-in-town",
        "comments_count": 37,
        "public_reactions_count": 142,
        "cover_image": None,
        "reading_time_minutes": 2,
        "user": {
            "name": "Ben Halpern",
            "username": "ben",
            "profile_image": "https://res.cloudinary.com/ben.png",
        },
    }


@pytest.fixture
def github_repo() -> dict[str, Any]:
    return {
        "id": 1296269,
        "name": "Hello-World",
        "full_name": "octocat/Hello-World",
        "html_url": "https://github.com/octocat/Hello-World",
        "description": "This your first repo!",
        "created_at": "2011-01-26T19:01:12Z",
        "stargazers_count": 80,
        "forks_count": 9,
        "language": "Rust",
        "topics": ["octocat", "Atom"],
        "owner": {
            "login": "octocat",
            "avatar_url": "https://github.com/images/error/octocat_happy.gif",
            "html_url": "https://github.com/octocat",
        },
    }
