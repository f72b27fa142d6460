"""Source adapters for fetching feed entries."""

from digest_curator.adapters.sources.rss_feed_source import FeedFetchError, RSSFeedSource

__all__ = ["FeedFetchError", "RSSFeedSource"]
