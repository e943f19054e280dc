"""
Web crawler core components.
"""

from .blacklist import BlacklistFilter
from .url_frontier import URLFrontier, MemoryFrontier, RedisFrontier
from .fetcher import WebFetcher, FetchResult
from .parser import ContentParser, ParsedContent, ImageRef

__all__ = [
    'BlacklistFilter',
    'URLFrontier', 'MemoryFrontier', 'RedisFrontier',
    'WebFetcher', 'FetchResult',
    'ContentParser', 'ParsedContent', 'ImageRef'
]
