"""SQLite session store, search and similarity matching."""

from .database import (
    CAPABILITY_FALLBACK,
    CAPABILITY_INDEXED,
    SessionDatabase,
    StoreNotInitializedError,
    reset_database,
)
from .search import SearchEngine, build_match_expression
from .similarity import SimilarityMatcher, extract_key_terms

__all__ = [
    "SessionDatabase",
    "StoreNotInitializedError",
    "reset_database",
    "CAPABILITY_INDEXED",
    "CAPABILITY_FALLBACK",
    "SearchEngine",
    "build_match_expression",
    "SimilarityMatcher",
    "extract_key_terms",
]
