"""Session search over the FTS5 index with a LIKE-based fallback."""

import logging
import re
import time
from datetime import datetime
from typing import Optional, Sequence

from ..models import SearchFilters, SearchResult, to_iso
from .database import SessionDatabase

logger = logging.getLogger(__name__)

HIGHLIGHT_START = "<mark>"
HIGHLIGHT_END = "</mark>"
SNIPPET_TOKENS = 24

_TOKEN_PATTERN = re.compile(r"\S+")
_WORD_CHAR = re.compile(r"\w")


def build_match_expression(query: str, operator: str = "AND") -> str:
    """Turn free text into a safe FTS5 MATCH expression.

    Each whitespace-separated token becomes a quoted phrase, so punctuation
    such as `ci/cd` or `c++` cannot break the query syntax. Tokens without a
    word character are dropped. Returns "" when nothing indexable remains.
    """
    phrases = []
    for token in _TOKEN_PATTERN.findall(query):
        if not _WORD_CHAR.search(token):
            continue
        phrases.append('"' + token.replace('"', '""') + '"')
    return f" {operator} ".join(phrases)


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def normalize_timestamp(value: str) -> str:
    """Convert an ISO-8601 bound to the stored UTC form so string comparison holds.

    Naive values are taken as UTC. Raises ValueError for unparseable input.
    """
    return to_iso(datetime.fromisoformat(value.replace("Z", "+00:00")))


class SearchEngine:
    """Evaluates SearchFilters against a SessionDatabase.

    The indexed path is used when the store reports FTS5 and the query has
    indexable text; everything else goes through substring matching ordered
    by recency.
    """

    def __init__(self, db: SessionDatabase):
        self._db = db

    def search(self, filters: SearchFilters) -> list[SearchResult]:
        query = (filters.query or "").strip()
        match_expression = build_match_expression(query) if query else ""
        if query and self._db.fts_available and match_expression:
            return self._run(filters, match_expression=match_expression)
        return self._run(filters, like_terms=[query] if query else [])

    def search_any(self, terms: Sequence[str], filters: Optional[SearchFilters] = None) -> list[SearchResult]:
        """Match sessions containing at least one of `terms`."""
        filters = filters or SearchFilters()
        terms = [t for t in terms if t]
        if not terms:
            return []
        match_expression = build_match_expression(" ".join(terms), operator="OR")
        if self._db.fts_available and match_expression:
            return self._run(filters, match_expression=match_expression, label=" OR ".join(terms))
        return self._run(filters, like_terms=terms, label=" OR ".join(terms))

    def _filter_conditions(self, filters: SearchFilters, alias: str) -> tuple[list[str], list]:
        conditions = []
        params: list = []

        if filters.agent_type:
            conditions.append(f"{alias}.agent_type = ?")
            params.append(filters.agent_type)
        if filters.project_context:
            conditions.append(f"{alias}.project_context = ?")
            params.append(filters.project_context)
        if filters.date_from:
            conditions.append(f"{alias}.created_at >= ?")
            params.append(normalize_timestamp(filters.date_from))
        if filters.date_to:
            conditions.append(f"{alias}.created_at < ?")
            params.append(normalize_timestamp(filters.date_to))
        if filters.tags:
            placeholders = ", ".join("?" for _ in filters.tags)
            conditions.append(
                f"EXISTS (SELECT 1 FROM json_each({alias}.tags) WHERE json_each.value IN ({placeholders}))"
            )
            params.extend(filters.tags)

        return conditions, params

    def _run(
        self,
        filters: SearchFilters,
        *,
        match_expression: Optional[str] = None,
        like_terms: Sequence[str] = (),
        label: Optional[str] = None,
    ) -> list[SearchResult]:
        start_time = time.time()
        limit = max(0, min(filters.limit, self._db.max_search_results))
        offset = max(0, filters.offset)
        if limit == 0:
            return []

        conditions, filter_params = self._filter_conditions(filters, "s")
        params: list = []

        if match_expression:
            sql = f"""
                SELECT s.*,
                       bm25(sessions_fts) as rank,
                       snippet(sessions_fts, -1, '{HIGHLIGHT_START}', '{HIGHLIGHT_END}', '...', {SNIPPET_TOKENS}) as matched_content
                FROM sessions_fts
                JOIN sessions s ON s.rowid = sessions_fts.rowid
                WHERE sessions_fts MATCH ?
            """
            params.append(match_expression)
            order_by = "ORDER BY rank, s.created_at DESC"
        else:
            sql = """
                SELECT s.*, NULL as rank, NULL as matched_content
                FROM sessions s
                WHERE 1 = 1
            """
            if like_terms:
                term_conditions = []
                for term in like_terms:
                    term_conditions.append(
                        "(casefold(s.title) LIKE ? ESCAPE '\\'"
                        " OR casefold(s.original_content) LIKE ? ESCAPE '\\'"
                        " OR casefold(s.tags) LIKE ? ESCAPE '\\')"
                    )
                    pattern = f"%{escape_like(term.casefold())}%"
                    params.extend([pattern, pattern, pattern])
                sql += f" AND ({' OR '.join(term_conditions)})"
            order_by = "ORDER BY s.created_at DESC, s.rowid DESC"

        for condition in conditions:
            sql += f" AND {condition}"
        params.extend(filter_params)

        sql += f" {order_by} LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = self._db.fetch_rows(sql, params)
        results = [
            SearchResult(
                session=self._db.row_to_session(row),
                rank=row["rank"],
                matched_content=row["matched_content"],
            )
            for row in rows
        ]

        elapsed_ms = int((time.time() - start_time) * 1000)
        self._db.log_search(
            label if label is not None else filters.query,
            len(results),
            [r.session_id for r in results[:10]],
            elapsed_ms,
        )
        logger.debug(
            f"Search {'indexed' if match_expression else 'fallback'} "
            f"returned {len(results)} results in {elapsed_ms}ms"
        )
        return results
