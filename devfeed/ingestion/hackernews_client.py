"""
Hacker News client using the public Firebase API.

Documentation: https://github.com/HackerNews/API

Listing endpoints only return ids, so a listing is resolved by fetching each
item's detail record concurrently. Both the id list and every normalized item
are cached, so a repeat listing inside the TTL makes no network calls.
"""

import asyncio
import logging
from typing import Any

from pydantic import BaseModel, Field

from devfeed.ingestion.base_client import SourceClient, clamp_limit
from devfeed.ingestion.http_client import ItemNotFoundError
from devfeed.ingestion.schemas import Item, SourceId

logger = logging.getLogger(__name__)

HACKERNEWS_API_URL = "https://hacker-news.firebaseio.com/v0/"
HACKERNEWS_ITEM_URL = "https://news.ycombinator.com/item?id={id}"

# Item types that are top-level submissions with a title
SUBMISSION_TYPES = frozenset({"story", "job", "poll"})


class HackerNewsUser(BaseModel):
    """Public profile of a Hacker News user."""

    id: str
    created: int
    karma: int = 0
    about: str | None = None
    submitted: list[int] = Field(default_factory=list)


def normalize_hackernews_item(raw: dict[str, Any] | None) -> Item | None:
    """
    Map a Hacker News item record to an Item.

    Returns None for records that are not live submissions (missing,
    deleted, dead, comments and poll options). Every submission maps to
    exactly one Item.
    """
    if not raw or raw.get("deleted") or raw.get("dead"):
        return None
    if raw.get("type") not in SUBMISSION_TYPES:
        return None

    item_id = raw["id"]
    return Item(
        id=item_id,
        source=SourceId.HACKERNEWS,
        title=raw["title"],
        url=raw.get("url") or HACKERNEWS_ITEM_URL.format(id=item_id),
        content=raw.get("text"),
        author=raw.get("by"),
        author_url=(
            f"https://news.ycombinator.com/user?id={raw['by']}" if raw.get("by") else None
        ),
        timestamp=float(raw["time"]),
        points=raw.get("score"),
        comment_count=raw.get("descendants"),
    )


class HackerNewsClient(SourceClient):
    """Client for the Hacker News API."""

    base_url = HACKERNEWS_API_URL

    @property
    def source_id(self) -> SourceId:
        return SourceId.HACKERNEWS

    @property
    def display_name(self) -> str:
        return "Hacker News"

    async def fetch_latest(self, limit: int = 30) -> list[Item]:
        """Get the current top stories."""
        return await self._fetch_listing("topstories.json", limit)

    async def fetch_new_stories(self, limit: int = 30) -> list[Item]:
        """Get the newest stories."""
        return await self._fetch_listing("newstories.json", limit)

    async def fetch_by_id(self, item_id: int | str) -> Item:
        try:
            numeric_id = int(item_id)
        except (TypeError, ValueError):
            raise ItemNotFoundError(
                f"Hacker News item {item_id!r} not found",
                source=self.source_id.value,
            ) from None
        item = await self._get_item(numeric_id)
        if item is None:
            raise ItemNotFoundError(
                f"Hacker News item {item_id} not found",
                source=self.source_id.value,
            )
        return item

    async def fetch_user(self, username: str) -> HackerNewsUser:
        user = await self._get_json(
            f"user/{username}.json",
            transform=lambda raw: HackerNewsUser.model_validate(raw) if raw else None,
        )
        if user is None:
            raise ItemNotFoundError(
                f"Hacker News user {username} not found",
                source=self.source_id.value,
            )
        return user

    async def _fetch_listing(self, endpoint: str, limit: int) -> list[Item]:
        ids = await self._get_json(endpoint, transform=list)
        selected = ids[: clamp_limit(limit)]

        items = await asyncio.gather(*(self._get_item(item_id) for item_id in selected))

        stories = [item for item in items if item is not None]
        logger.debug(
            f"{self.name} resolved {len(stories)}/{len(selected)} items from {endpoint}"
        )
        return stories

    async def _get_item(self, item_id: int) -> Item | None:
        return await self._get_json(
            f"item/{item_id}.json",
            transform=normalize_hackernews_item,
        )
