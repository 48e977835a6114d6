"""
GitHub client using the REST API.

Documentation: https://docs.github.com/en/rest

GitHub has no trending endpoint, so "trending" is approximated with the
repository search API: repositories created after a cutoff date, sorted by
stars.
"""

import calendar
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal

from devfeed.ingestion.base_client import SourceClient, clamp_limit, parse_iso_timestamp
from devfeed.ingestion.schemas import Item, SourceId

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com/"
GITHUB_SITE_URL = "https://github.com"

TrendingWindow = Literal["daily", "weekly", "monthly"]


def _months_before(day: date, months: int = 1) -> date:
    """Same day `months` earlier, clamped to the end of shorter months."""
    year, month_index = divmod(day.year * 12 + day.month - 1 - months, 12)
    month = month_index + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def trending_cutoff(today: date, since: TrendingWindow) -> date:
    """Earliest creation date considered for a trending window."""
    if since == "daily":
        return today - timedelta(days=1)
    if since == "weekly":
        return today - timedelta(days=7)
    if since == "monthly":
        return _months_before(today)
    raise ValueError(f"Unsupported trending window: {since!r}")


def normalize_github_repository(raw: dict[str, Any]) -> Item:
    """Map a GitHub repository record to an Item."""
    owner = raw.get("owner") or {}
    full_name = raw.get("full_name")

    return Item(
        id=raw["id"],
        source=SourceId.GITHUB,
        title=raw["name"],
        url=raw.get("html_url") or (f"{GITHUB_SITE_URL}/{full_name}" if full_name else None),
        description=raw.get("description"),
        author=owner.get("login"),
        author_image=owner.get("avatar_url"),
        author_url=owner.get("html_url"),
        timestamp=parse_iso_timestamp(raw["created_at"]),
        stars=raw.get("stargazers_count"),
        forks=raw.get("forks_count"),
        language=raw.get("language"),
        # An absent topic list means the repository has no topics
        tags=list(raw.get("topics") or []),
    )


def _normalize_repositories(payload: list[dict[str, Any]]) -> list[Item]:
    return [normalize_github_repository(raw) for raw in payload]


def _normalize_search(payload: dict[str, Any]) -> list[Item]:
    return _normalize_repositories(payload["items"])


class GitHubClient(SourceClient):
    """Client for the GitHub REST API."""

    base_url = GITHUB_API_URL

    def __init__(self, **kwargs: Any):
        headers = {"Accept": "application/vnd.github+json"}
        headers.update(kwargs.pop("headers", None) or {})
        super().__init__(headers=headers, **kwargs)

    @property
    def source_id(self) -> SourceId:
        return SourceId.GITHUB

    @property
    def display_name(self) -> str:
        return "GitHub"

    async def fetch_latest(self, limit: int = 30) -> list[Item]:
        """Get today's trending repositories across all languages."""
        return await self.fetch_trending(limit=limit)

    async def fetch_trending(
        self,
        language: str | None = None,
        since: TrendingWindow = "daily",
        limit: int = 30,
    ) -> list[Item]:
        """
        Get the most-starred repositories created within the window.

        Args:
            language: Optional primary language filter (e.g. "rust")
            since: Window size: daily, weekly or monthly
            limit: Number of repositories (clamped into 1..100)
        """
        today = datetime.fromtimestamp(self._clock(), tz=timezone.utc).date()
        query = f"created:>{trending_cutoff(today, since).isoformat()}"
        if language:
            query += f" language:{language}"

        logger.debug(f"{self.name} searching repositories with q={query!r}")
        repositories = await self._get_json(
            "search/repositories",
            params={
                "q": query,
                "sort": "stars",
                "order": "desc",
                "per_page": clamp_limit(limit),
            },
            transform=_normalize_search,
        )
        return list(repositories)

    async def fetch_by_id(self, item_id: int | str) -> Item:
        return await self._get_json(
            f"repositories/{item_id}",
            transform=normalize_github_repository,
        )

    async def fetch_repository(self, owner: str, name: str) -> Item:
        return await self._get_json(
            f"repos/{owner}/{name}",
            transform=normalize_github_repository,
        )

    async def fetch_user_repositories(self, username: str, limit: int = 30) -> list[Item]:
        """Get a user's or organization's most recently updated repositories."""
        repositories = await self._get_json(
            f"users/{username}/repos",
            params={"sort": "updated", "per_page": clamp_limit(limit)},
            transform=_normalize_repositories,
        )
        return list(repositories)
