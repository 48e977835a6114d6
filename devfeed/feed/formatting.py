"""Display helpers for rendering items."""

import time

_MINUTE = 60
_HOUR = 3600
_DAY = 86400
_WEEK = 604800
_MONTH = 2592000  # 30 days
_YEAR = 31536000  # 365 days

_UNITS = (
    (_YEAR, "year"),
    (_MONTH, "month"),
    (_WEEK, "week"),
    (_DAY, "day"),
    (_HOUR, "hour"),
    (_MINUTE, "minute"),
)


def format_relative_time(timestamp: float, now: float | None = None) -> str:
    """
    Describe how long ago `timestamp` was, e.g. "5 minutes ago".

    Anything under a minute (including future timestamps) is "just now".

    Args:
        timestamp: Seconds since epoch
        now: Reference time in seconds since epoch (defaults to current time)
    """
    now = time.time() if now is None else now
    diff = int(now) - int(timestamp)

    if diff < _MINUTE:
        return "just now"

    for seconds, unit in _UNITS:
        if diff >= seconds:
            count = diff // seconds
            return f"{count} {unit}{'s' if count > 1 else ''} ago"

    return "just now"
