"""
Whole-word term blacklist applied to URLs, titles, page text and links.
"""

import logging
import re
from pathlib import Path
from typing import FrozenSet, Iterable, Optional

from ..errors import ConfigError


class BlacklistFilter:
    """
    Immutable set of banned terms.

    All terms are compiled into one case-insensitive alternation, so a check
    is a single scan of the text. Terms are bounded by non-word characters on
    both sides: "sex" matches "free sex videos" and "sex.example.com" but not
    "Sussex".
    """

    def __init__(self, terms: Iterable[str] = ()):
        self.logger = logging.getLogger(__name__)
        normalized = {term.strip().lower() for term in terms}
        normalized.discard('')
        self._terms: FrozenSet[str] = frozenset(normalized)

        if self._terms:
            # Longest first so a phrase wins over a word it starts with
            alternation = '|'.join(
                re.escape(term) for term in sorted(self._terms, key=lambda t: (-len(t), t))
            )
            self._pattern: Optional[re.Pattern] = re.compile(
                rf'(?<!\w)(?:{alternation})(?!\w)', re.IGNORECASE
            )
        else:
            self._pattern = None

    @classmethod
    def load(cls, path: str) -> 'BlacklistFilter':
        """Load newline-delimited terms. Blank lines are ignored."""
        blacklist_path = Path(path)
        if not blacklist_path.exists():
            raise ConfigError(f"Blacklist file not found: {blacklist_path}")

        try:
            with open(blacklist_path, 'r', encoding='utf-8') as f:
                terms = [line.strip() for line in f]
        except OSError as e:
            raise ConfigError(f"Could not read blacklist file {blacklist_path}: {e}")

        blacklist = cls(terms)
        blacklist.logger.info(f"Loaded {len(blacklist)} blacklist terms from {blacklist_path}")
        return blacklist

    @property
    def terms(self) -> FrozenSet[str]:
        return self._terms

    def __len__(self) -> int:
        return len(self._terms)

    def matched_term(self, text: Optional[str]) -> Optional[str]:
        """Return the first banned term found in text, or None."""
        if not text or self._pattern is None:
            return None

        match = self._pattern.search(text)
        if match is None:
            return None
        return match.group(0).lower()

    def is_blacklisted(self, text: Optional[str]) -> bool:
        return self.matched_term(text) is not None
