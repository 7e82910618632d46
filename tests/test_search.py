"""Tests for search functionality."""

import pytest

from chat_context.index import SearchEngine, build_match_expression
from chat_context.index.search import escape_like
from chat_context.models import SearchFilters

POSTGRES_CHAT = "We decided to use PostgreSQL for the database. `SELECT * FROM users`"


@pytest.fixture
def engine(db):
    return SearchEngine(db)


def add(db, content, **overrides) -> str:
    fields = {
        "agent_id": "agent-1",
        "agent_type": "other",
        "original_content": content,
        "title": None,
        "project_context": None,
        "tags": None,
    }
    fields.update(overrides)
    return db.create_session(**fields)


class TestMatchExpression:
    """Tests for FTS query construction."""

    def test_tokens_quoted_and_joined(self):
        """Test each token becomes a quoted phrase."""
        assert build_match_expression("auth token") == '"auth" AND "token"'

    def test_or_operator(self):
        """Test OR joining for similarity queries."""
        assert build_match_expression("a b", operator="OR") == '"a" OR "b"'

    def test_embedded_quotes_escaped(self):
        """Test double quotes inside a token are doubled."""
        assert build_match_expression('say"hi') == '"say""hi"'

    def test_punctuation_only_dropped(self):
        """Test tokens with no word characters are removed."""
        assert build_match_expression("*** ( ) -") == ""
        assert build_match_expression("ci/cd ++") == '"ci/cd"'

    def test_escape_like(self):
        """Test LIKE wildcards are escaped."""
        assert escape_like("100%_done\\") == "100\\%\\_done\\\\"


class TestSaveAndFind:
    """The canonical save/search/similar flow, in both capability modes."""

    def test_query_finds_session(self, db, engine):
        """Test a case-insensitive query finds the saved session."""
        session_id = add(db, POSTGRES_CHAT, tags=["db"])
        results = engine.search(SearchFilters(query="postgresql"))
        assert [r.session_id for r in results] == [session_id]

    def test_agent_type_filter_excludes(self, db, engine):
        """Test a non-matching agent type filter returns nothing."""
        add(db, POSTGRES_CHAT, tags=["db"])
        assert engine.search(SearchFilters(agent_type="claude")) == []

    def test_filter_only_query_has_no_rank(self, db, engine):
        """Test an empty query with filters is a pure filter query."""
        session_id = add(db, POSTGRES_CHAT, tags=["db"])
        results = engine.search(SearchFilters(agent_type="other"))
        assert [r.session_id for r in results] == [session_id]
        assert results[0].rank is None
        assert results[0].matched_content is None


    def test_non_ascii_tag_found(self, db, engine):
        """Test a query matches a tag with non-ASCII characters."""
        session_id = add(db, "unrelated body", tags=["café"])
        results = engine.search(SearchFilters(query="café"))
        assert [r.session_id for r in results] == [session_id]

    def test_non_ascii_case_insensitive(self, db, engine):
        """Test case folding applies beyond ASCII letters."""
        session_id = add(db, "lunch at the café downstairs")
        results = engine.search(SearchFilters(query="CAFÉ"))
        assert [r.session_id for r in results] == [session_id]


class TestFilters:
    """Tests for equality, tag and date filters."""

    def test_project_filter(self, db, engine):
        """Test project equality filter."""
        wanted = add(db, "alpha notes", project_context="alpha")
        add(db, "beta notes", project_context="beta")
        results = engine.search(SearchFilters(query="notes", project_context="alpha"))
        assert [r.session_id for r in results] == [wanted]

    def test_tags_match_exact_members(self, db, engine):
        """Test tag filtering does not match substrings of other tags."""
        exact = add(db, "one", tags=["db"])
        add(db, "two", tags=["mongodb"])
        results = engine.search(SearchFilters(tags=("db",)))
        assert [r.session_id for r in results] == [exact]

    def test_tags_are_or_combined(self, db, engine):
        """Test any listed tag qualifies a session."""
        first = add(db, "one", tags=["api"])
        second = add(db, "two", tags=["ops", "x"])
        add(db, "three", tags=["misc"])
        results = engine.search(SearchFilters(tags=("api", "ops")))
        assert {r.session_id for r in results} == {first, second}

    def test_date_range_half_open(self, db, engine, backdate):
        """Test date_from is inclusive and date_to exclusive."""
        jan1 = add(db, "first")
        jan2 = add(db, "second")
        backdate(db, jan1, "2024-01-01T00:00:00.000Z")
        backdate(db, jan2, "2024-01-02T00:00:00.000Z")

        results = engine.search(
            SearchFilters(date_from="2024-01-01T00:00:00.000Z", date_to="2024-01-02T00:00:00.000Z")
        )
        assert [r.session_id for r in results] == [jan1]

    def test_date_bounds_with_offset(self, db, engine, backdate):
        """Test offset bounds are converted to UTC before comparison."""
        session_id = add(db, "morning standup")
        backdate(db, session_id, "2024-01-01T10:00:00.000Z")

        # 12:00+05:00 is 07:00Z
        results = engine.search(SearchFilters(date_from="2024-01-01T12:00:00+05:00"))
        assert [r.session_id for r in results] == [session_id]

        # 15:00+05:00 is 10:00Z and the upper bound is exclusive
        assert engine.search(SearchFilters(date_to="2024-01-01T15:00:00+05:00")) == []
        results = engine.search(SearchFilters(date_to="2024-01-01T15:00:01+05:00"))
        assert [r.session_id for r in results] == [session_id]

    def test_no_match_is_empty(self, db, engine):
        """Test non-matching filters yield an empty list."""
        add(db, "content")
        assert engine.search(SearchFilters(project_context="nowhere")) == []


class TestPaging:
    """Tests for limit, offset and the result cap."""

    def test_limit_and_offset(self, db, engine):
        """Test paging over a filter-only query."""
        ids = [add(db, f"entry {i}") for i in range(5)]
        newest_first = list(reversed(ids))

        page1 = engine.search(SearchFilters(limit=2))
        page2 = engine.search(SearchFilters(limit=2, offset=2))
        assert [r.session_id for r in page1] == newest_first[:2]
        assert [r.session_id for r in page2] == newest_first[2:4]

    def test_offset_past_end(self, db, engine):
        """Test an offset beyond the result count returns nothing."""
        add(db, "only one")
        assert engine.search(SearchFilters(offset=10)) == []

    def test_server_cap(self, db, engine):
        """Test the configured maximum overrides a larger limit."""
        for i in range(5):
            add(db, f"entry {i}")
        db.set_config("max_search_results", "3")
        assert len(engine.search(SearchFilters(limit=50))) == 3

    def test_zero_limit(self, db, engine):
        """Test a zero limit returns nothing."""
        add(db, "entry")
        assert engine.search(SearchFilters(limit=0)) == []


class TestIndexedPath:
    """Tests specific to FTS5 search."""

    def test_rank_and_snippet(self, indexed_db):
        """Test hits carry an ascending rank and a highlighted excerpt."""
        engine = SearchEngine(indexed_db)
        add(indexed_db, "kafka kafka kafka consumer lag")
        add(indexed_db, "a long discussion that mentions kafka once among many other words")

        results = engine.search(SearchFilters(query="kafka"))
        assert len(results) == 2
        assert results[0].rank <= results[1].rank
        assert "<mark>" in results[0].matched_content

    def test_exact_title_tracks_updates(self, indexed_db):
        """Test title searches follow creates, updates and deletes."""
        engine = SearchEngine(indexed_db)
        session_id = add(indexed_db, "body text", title="Quarterly Zebra Review")

        def title_hits(title):
            return [r.session_id for r in engine.search(SearchFilters(query=title))]

        assert title_hits("Quarterly Zebra Review") == [session_id]

        indexed_db.update_session(session_id, {"title": "Annual Giraffe Review"})
        assert title_hits("Quarterly Zebra Review") == []
        assert title_hits("Annual Giraffe Review") == [session_id]

        indexed_db.delete_session(session_id)
        assert title_hits("Annual Giraffe Review") == []

    def test_all_terms_required(self, indexed_db):
        """Test multi-word queries require every term."""
        engine = SearchEngine(indexed_db)
        both = add(indexed_db, "redis cache eviction")
        add(indexed_db, "redis only")
        results = engine.search(SearchFilters(query="redis eviction"))
        assert [r.session_id for r in results] == [both]

    def test_syntax_characters_do_not_raise(self, indexed_db):
        """Test FTS operator characters in a query are treated as text."""
        engine = SearchEngine(indexed_db)
        add(indexed_db, "configure ci/cd pipeline")
        results = engine.search(SearchFilters(query='ci/cd "pipeline'))
        assert len(results) == 1

    def test_punctuation_query_uses_substring_match(self, indexed_db):
        """Test a query with no indexable token falls back to substring search."""
        engine = SearchEngine(indexed_db)
        session_id = add(indexed_db, "rating: *** stars")
        results = engine.search(SearchFilters(query="***"))
        assert [r.session_id for r in results] == [session_id]
        assert results[0].rank is None


class TestFallbackPath:
    """Tests specific to substring search."""

    def test_verbatim_substring_found(self, fallback_db):
        """Test any verbatim substring of the content is found."""
        engine = SearchEngine(fallback_db)
        session_id = add(fallback_db, "the flux capacitor needs 1.21 gigawatts")
        for fragment in ("capacitor needs 1.2", "x cap", "GIGAWATTS"):
            results = engine.search(SearchFilters(query=fragment))
            assert [r.session_id for r in results] == [session_id]

    def test_wildcards_are_literal(self, fallback_db):
        """Test % and _ in a query match only themselves."""
        engine = SearchEngine(fallback_db)
        literal = add(fallback_db, "coverage at 100% now")
        add(fallback_db, "coverage at 1000 now")
        results = engine.search(SearchFilters(query="100%"))
        assert [r.session_id for r in results] == [literal]

    def test_tags_field_searched(self, fallback_db):
        """Test the serialized tags take part in text matching."""
        engine = SearchEngine(fallback_db)
        session_id = add(fallback_db, "unrelated", tags=["observability"])
        results = engine.search(SearchFilters(query="observ"))
        assert [r.session_id for r in results] == [session_id]

    def test_newest_first_without_rank(self, fallback_db, backdate):
        """Test fallback hits are ordered by recency."""
        engine = SearchEngine(fallback_db)
        older = add(fallback_db, "kafka topic")
        newer = add(fallback_db, "kafka consumer")
        backdate(fallback_db, older, "2024-01-01T00:00:00.000Z")

        results = engine.search(SearchFilters(query="kafka"))
        assert [r.session_id for r in results] == [newer, older]
        assert all(r.rank is None for r in results)


class TestSearchLog:
    """Tests for the search history table."""

    def test_searches_recorded(self, db, engine):
        """Test each search is appended to the history."""
        add(db, "something")
        engine.search(SearchFilters(query="something"))
        rows = db.recent_searches()
        assert len(rows) == 1
        assert rows[0]["query"] == "something"
        assert rows[0]["result_count"] == 1
        assert rows[0]["capability"] == db.capability
