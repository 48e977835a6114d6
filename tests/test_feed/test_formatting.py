"""Tests for display formatting helpers."""

import pytest

from devfeed.feed.formatting import format_relative_time

NOW = 1_700_000_000


class TestFormatRelativeTime:
    @pytest.mark.parametrize(
        "age,expected",
        [
            (0, "just now"),
            (59, "just now"),
            (60, "1 minute ago"),
            (119, "1 minute ago"),
            (120, "2 minutes ago"),
            (3599, "59 minutes ago"),
            (3600, "1 hour ago"),
            (7200, "2 hours ago"),
            (86400, "1 day ago"),
            (6 * 86400, "6 days ago"),
            (7 * 86400, "1 week ago"),
            (29 * 86400, "4 weeks ago"),
            (30 * 86400, "1 month ago"),
            (364 * 86400, "12 months ago"),
            (365 * 86400, "1 year ago"),
            (3 * 365 * 86400, "3 years ago"),
        ],
    )
    def test_buckets(self, age, expected):
        """Should pick the largest whole unit."""
        assert format_relative_time(NOW - age, now=NOW) == expected

    def test_future_timestamp_is_just_now(self):
        """Should treat future timestamps as just now."""
        assert format_relative_time(NOW + 500, now=NOW) == "just now"

    def test_fractional_timestamps(self):
        """Should round partial units down."""
        assert format_relative_time(NOW - 60.4, now=NOW + 0.5) == "1 minute ago"

    def test_defaults_to_current_time(self):
        """Should use the current time when none is given."""
        assert format_relative_time(0).endswith("years ago")
