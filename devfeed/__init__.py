"""devfeed - aggregated developer news from Hacker News, DEV.to and GitHub."""

__version__ = "0.1.0"
