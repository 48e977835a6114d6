"""
Canonical item schema shared by every source client.

All source clients MUST normalize their provider payloads into `Item`.
The aggregator, filters and UI binding depend only on these field names.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SourceId(str, Enum):
    """Supported upstream providers."""

    HACKERNEWS = "hackernews"
    DEVTO = "devto"
    GITHUB = "github"


class Item(BaseModel):
    """
    CANONICAL ITEM SCHEMA

    `id` is only unique within a source; `key` combines it with `source`
    for a global identity. Provider-specific fields are `None` when they do
    not apply to the item's source.

    Serialize for the UI with `model_dump(by_alias=True)` to get camelCase
    field names (`commentCount`, `readingTime`, ...).
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    # Identity
    id: int | str = Field(..., description="Identifier unique within the source")
    source: SourceId = Field(..., description="Provider that produced the item")

    # Core fields
    title: str = Field(..., description="Headline, article title or repository name")
    url: str | None = Field(default=None, description="Link to the original item")
    description: str | None = Field(default=None)
    content: str | None = Field(default=None, description="Inline text body, if any")
    timestamp: float = Field(..., description="Seconds since epoch, used for sorting")

    # Author
    author: str | None = Field(default=None)
    author_image: str | None = Field(default=None)
    author_url: str | None = Field(default=None)

    # Provider-specific
    points: int | None = Field(default=None, description="Hacker News score")
    comment_count: int | None = Field(default=None)
    reactions: int | None = Field(default=None, description="DEV.to public reactions")
    reading_time: int | None = Field(default=None, description="DEV.to minutes")
    cover_image: str | None = Field(default=None)
    stars: int | None = Field(default=None, description="GitHub stargazers")
    forks: int | None = Field(default=None)
    language: str | None = Field(default=None)
    tags: list[str] | None = Field(
        default=None,
        description="DEV.to tags or GitHub topics; None when not applicable",
    )

    @property
    def key(self) -> tuple[SourceId, int | str]:
        """Global identity of the item."""
        return (self.source, self.id)

    def matches_search(self, query: str) -> bool:
        """Case-insensitive substring match on title, description or content."""
        query = query.lower()
        return any(
            query in text.lower()
            for text in (self.title, self.description, self.content)
            if text
        )

    def matches_tags(self, tags: frozenset[str]) -> bool:
        """True if any of the item's tags (case-normalized) is in `tags`."""
        if not self.tags:
            return False
        return any(tag.lower() in tags for tag in self.tags)
