"""
DEV.to client using the Forem API.

Documentation: https://developers.forem.com/api
"""

from typing import Any

from devfeed.ingestion.base_client import SourceClient, clamp_limit, parse_iso_timestamp
from devfeed.ingestion.schemas import Item, SourceId

DEVTO_API_URL = "https://dev.to/api/"
DEVTO_SITE_URL = "https://dev.to"


def _parse_tags(raw: dict[str, Any]) -> list[str]:
    """
    Read an article's tags.

    Listing records carry `tag_list` as an array; the detail endpoint sends
    `tag_list` as a comma-separated string and the array under `tags`.
    """
    tags = raw.get("tag_list")
    if isinstance(tags, str):
        if isinstance(raw.get("tags"), list):
            return list(raw["tags"])
        return [tag.strip() for tag in tags.split(",") if tag.strip()]
    return list(tags or [])


def normalize_devto_article(raw: dict[str, Any]) -> Item:
    """Map a DEV.to article record to an Item."""
    user = raw.get("user") or {}
    path = raw.get("path")

    return Item(
        id=raw["id"],
        source=SourceId.DEVTO,
        title=raw["title"],
        url=raw.get("url") or (f"{DEVTO_SITE_URL}{path}" if path else None),
        description=raw.get("description"),
        author=user.get("name"),
        author_image=user.get("profile_image"),
        author_url=f"{DEVTO_SITE_URL}/{user['username']}" if user.get("username") else None,
        timestamp=parse_iso_timestamp(raw["published_at"]),
        reactions=raw.get("public_reactions_count"),
        comment_count=raw.get("comments_count"),
        reading_time=raw.get("reading_time_minutes"),
        tags=_parse_tags(raw),
        cover_image=raw.get("cover_image"),
    )


def _normalize_articles(payload: list[dict[str, Any]]) -> list[Item]:
    return [normalize_devto_article(raw) for raw in payload]


class DevToClient(SourceClient):
    """Client for the DEV.to API."""

    base_url = DEVTO_API_URL

    @property
    def source_id(self) -> SourceId:
        return SourceId.DEVTO

    @property
    def display_name(self) -> str:
        return "DEV.to"

    async def fetch_latest(self, limit: int = 30) -> list[Item]:
        """Get the latest published articles."""
        articles = await self._get_json(
            "articles",
            params={"per_page": clamp_limit(limit)},
            transform=_normalize_articles,
        )
        return list(articles)

    async def fetch_by_tag(self, tag: str, limit: int = 30) -> list[Item]:
        """Get the latest articles carrying `tag`."""
        articles = await self._get_json(
            "articles",
            params={"tag": tag, "per_page": clamp_limit(limit)},
            transform=_normalize_articles,
        )
        return list(articles)

    async def fetch_by_id(self, item_id: int | str) -> Item:
        return await self._get_json(
            f"articles/{item_id}",
            transform=normalize_devto_article,
        )
