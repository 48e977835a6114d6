"""Feed binding for UI consumers."""

from devfeed.feed.controller import FeedController
from devfeed.feed.formatting import format_relative_time

__all__ = ["FeedController", "format_relative_time"]
