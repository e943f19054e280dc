"""
Keyword search over the page store.

Two strategies answer the same query interface:

- FullTextSearch: every whitespace-separated term must match the start of a
  word in the title or content; results ordered by bm25 with title hits
  weighted above content hits.
- SubstringSearch: case-insensitive containment of the whole query in title
  or content; unordered, rank 0.
"""

import logging
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from ..storage.database import PageStore

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
SUBSTRING_SNIPPET_LENGTH = 200
TITLE_WEIGHT = 10.0
SNIPPET_TOKENS = 24

# Matches what the unicode61 tokenizer keeps: letters and digits, not '_'
WORD_PATTERN = re.compile(r'[^\W_]', re.UNICODE)


@dataclass
class SearchResult:
    """One search hit."""
    url: str
    title: Optional[str]
    snippet: str
    rank: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_limit(limit: Optional[int], default: int = DEFAULT_LIMIT) -> int:
    """Return a usable limit. None means default; anything else must be an int in 1..MAX_LIMIT."""
    if limit is None:
        return default
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
        raise ValueError(f"limit must be an integer between 1 and {MAX_LIMIT}, got {limit!r}")
    return limit


def build_match_expression(query: str) -> Optional[str]:
    """
    Turn a user query into an FTS5 MATCH expression.

    Each term becomes a quoted prefix phrase and terms are ANDed:
    'foo bar' -> '"foo"* AND "bar"*'. Terms without any word character are
    dropped; None means nothing searchable is left.
    """
    terms = [term for term in query.split() if WORD_PATTERN.search(term)]
    if not terms:
        return None
    return ' AND '.join('"' + term.replace('"', '""') + '"*' for term in terms)


class SearchStrategy:
    """Strategy interface."""

    name = "base"

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        raise NotImplementedError


class FullTextSearch(SearchStrategy):
    """Ranked search backed by the store's FTS5 index."""

    name = "ranked"

    def __init__(self, store: PageStore, title_weight: float = TITLE_WEIGHT,
                 snippet_tokens: int = SNIPPET_TOKENS):
        self.store = store
        self.title_weight = title_weight
        self.snippet_tokens = snippet_tokens

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        match_expression = build_match_expression(query)
        if match_expression is None:
            return []

        rows = await self.store.search_fulltext(
            match_expression, limit,
            title_weight=self.title_weight,
            snippet_tokens=self.snippet_tokens,
        )
        return [
            SearchResult(url=row['url'], title=row['title'],
                         snippet=row['snippet'] or '', rank=float(row['score']))
            for row in rows
        ]


class SubstringSearch(SearchStrategy):
    """Fallback search with no ranking."""

    name = "substring"

    def __init__(self, store: PageStore, snippet_length: int = SUBSTRING_SNIPPET_LENGTH):
        self.store = store
        self.snippet_length = snippet_length

    async def search(self, query: str, limit: int) -> List[SearchResult]:
        rows = await self.store.search_substring(query, limit)
        return [
            SearchResult(url=row['url'], title=row['title'],
                         snippet=self._snippet(row['content']), rank=0.0)
            for row in rows
        ]

    def _snippet(self, content: Optional[str]) -> str:
        if not content:
            return ''
        if len(content) > self.snippet_length:
            return content[:self.snippet_length] + '...'
        return content


class SearchEngine:
    """Query entry point used by the API. Strategy is fixed at construction."""

    def __init__(self, strategy: SearchStrategy, default_limit: int = DEFAULT_LIMIT):
        self.strategy = strategy
        self.default_limit = default_limit
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_store(cls, store: PageStore, mode: str = "ranked",
                   default_limit: int = DEFAULT_LIMIT) -> 'SearchEngine':
        """Pick the strategy for mode, falling back to substring without FTS5."""
        logger = logging.getLogger(__name__)

        if mode == "ranked" and store.fts_available:
            strategy: SearchStrategy = FullTextSearch(store)
        else:
            if mode == "ranked":
                logger.warning("Ranked search requested but full-text index is unavailable; "
                               "using substring search")
            strategy = SubstringSearch(store)

        logger.info(f"Search engine using {strategy.name} strategy")
        return cls(strategy, default_limit)

    @property
    def mode(self) -> str:
        return self.strategy.name

    async def search(self, query: Optional[str], limit: Optional[int] = None) -> List[SearchResult]:
        """
        Run a query.

        Blank queries return no results. Raises ValueError for a bad limit
        and StorageError if the store cannot be read.
        """
        limit = validate_limit(limit, self.default_limit)
        if query is None or not query.strip():
            return []

        results = await self.strategy.search(query.strip(), limit)
        self.logger.debug(f"Query {query!r} returned {len(results)} results")
        return results
