"""
Exception types shared across the crawler, storage and search layers.
"""


class CrawlIndexError(Exception):
    """Base class for all crawlindex errors."""
    pass


class ConfigError(CrawlIndexError):
    """Missing or invalid startup input. Fatal before the crawl loop starts."""
    pass


class FetchError(CrawlIndexError):
    """Network, timeout or protocol failure while fetching a page."""

    def __init__(self, url: str, message: str, status_code: int = 0):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message
        self.status_code = status_code


class StorageError(CrawlIndexError):
    """Read or write failure in the page store."""
    pass


class SyncError(CrawlIndexError):
    """External synchronization step failed."""
    pass
