"""Data models for the aggregation module."""

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devfeed.ingestion.schemas import SourceId


@dataclass
class SourceRegistration:
    """A known source and whether it takes part in aggregation.

    `enabled` is the only field that changes after startup.
    """

    id: str
    display_name: str
    enabled: bool = True


DEFAULT_SOURCES: tuple[tuple[str, str], ...] = (
    (SourceId.HACKERNEWS.value, "Hacker News"),
    (SourceId.DEVTO.value, "DEV.to"),
    (SourceId.GITHUB.value, "GitHub"),
)


def default_registrations() -> list[SourceRegistration]:
    """Fresh registrations for the built-in providers, all enabled."""
    return [SourceRegistration(id=id_, display_name=name) for id_, name in DEFAULT_SOURCES]


@dataclass(frozen=True)
class SourceErrorRecord:
    """Last failure seen for a source. One slot per source, not a log."""

    source_id: str
    message: str
    timestamp: float


class FeedFilter(BaseModel):
    """
    Which sources to aggregate and how to narrow the merged result.

    `sources=None` means "whatever is currently enabled". `search` is
    stored stripped and lower-cased (blank becomes None) and tags are
    lower-cased, so equal filters compare and hash equal.
    """

    model_config = ConfigDict(frozen=True)

    sources: frozenset[str] | None = Field(default=None)
    search: str | None = Field(default=None)
    tags: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("sources", mode="before")
    @classmethod
    def _coerce_sources(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        return frozenset(
            source.value if isinstance(source, SourceId) else str(source) for source in value
        )

    @field_validator("search")
    @classmethod
    def _normalize_search(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().lower()
        return value or None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value):
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(str(tag).strip().lower() for tag in value if str(tag).strip())
