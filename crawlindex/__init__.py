"""
CrawlIndex

A small web crawler and keyword search engine: crawls from a seed list,
filters pages against a blacklist, stores them in SQLite and serves search
over the stored corpus.
"""

__version__ = "1.0.0"
__description__ = "Continuous web crawler with page indexing and keyword search"
