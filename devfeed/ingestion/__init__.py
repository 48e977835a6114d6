"""Data ingestion module - source clients, schemas and HTTP infrastructure."""

from devfeed.ingestion.base_client import SourceClient
from devfeed.ingestion.devto_client import DevToClient
from devfeed.ingestion.github_client import GitHubClient
from devfeed.ingestion.hackernews_client import HackerNewsClient
from devfeed.ingestion.http_client import (
    HTTPClientError,
    ItemNotFoundError,
    RateLimitError,
    RetryConfig,
)
from devfeed.ingestion.schemas import Item, SourceId

__all__ = [
    "DevToClient",
    "GitHubClient",
    "HTTPClientError",
    "HackerNewsClient",
    "Item",
    "ItemNotFoundError",
    "RateLimitError",
    "RetryConfig",
    "SourceClient",
    "SourceId",
]
