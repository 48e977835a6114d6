"""Aggregation: fan-out, merge, filter and cache across sources."""

from devfeed.aggregation.config import AggregationConfig
from devfeed.aggregation.schemas import (
    FeedFilter,
    SourceErrorRecord,
    SourceRegistration,
    default_registrations,
)
from devfeed.aggregation.service import FeedAggregator, UnknownSourceError

__all__ = [
    "AggregationConfig",
    "FeedAggregator",
    "FeedFilter",
    "SourceErrorRecord",
    "SourceRegistration",
    "UnknownSourceError",
    "default_registrations",
]
