"""Find sessions related to a piece of free text via its most frequent terms."""

import re
from collections import Counter
from typing import Optional

from ..models import SearchFilters, SearchResult
from ..rules import DEFAULT_RULES, ExtractionRules
from .search import SearchEngine

_NON_WORD = re.compile(r"[^\w\s]")


def extract_key_terms(
    text: str,
    limit: Optional[int] = None,
    rules: ExtractionRules = DEFAULT_RULES,
) -> list[str]:
    """Lowercase word tokens ranked by frequency, stop words removed.

    Ties keep first-occurrence order.
    """
    stop_words = set(rules.stop_words)
    words = [
        word
        for word in _NON_WORD.sub(" ", text.lower()).split()
        if len(word) >= rules.min_term_length and word not in stop_words
    ]
    counts = Counter(words)
    return [word for word, _ in counts.most_common(limit or rules.max_terms)]


class SimilarityMatcher:
    def __init__(self, engine: SearchEngine, rules: ExtractionRules = DEFAULT_RULES):
        self._engine = engine
        self.rules = rules

    def find_similar(self, text: str, limit: int = 5) -> list[SearchResult]:
        terms = extract_key_terms(text, rules=self.rules)
        if not terms:
            return []
        return self._engine.search_any(terms, SearchFilters(limit=limit))

    def based_on(self, text: str, count: int = 5) -> list[str]:
        """Terms reported back to callers as the basis of a similarity match."""
        return extract_key_terms(text, limit=count, rules=self.rules)
