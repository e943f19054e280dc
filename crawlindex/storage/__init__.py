"""
Storage layer for crawled pages.
"""

from .database import PageStore, Page, ImageRecord, StoreStats

__all__ = ['PageStore', 'Page', 'ImageRecord', 'StoreStats']
