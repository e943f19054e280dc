"""
Search over the page store.
"""

from .engine import SearchEngine, SearchResult, FullTextSearch, SubstringSearch

__all__ = ['SearchEngine', 'SearchResult', 'FullTextSearch', 'SubstringSearch']
