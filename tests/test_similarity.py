"""Tests for similarity matching."""

import pytest

from chat_context.index import SearchEngine, SimilarityMatcher, extract_key_terms
from chat_context.rules import ExtractionRules


@pytest.fixture
def matcher(db):
    return SimilarityMatcher(SearchEngine(db))


def add(db, content, **overrides) -> str:
    fields = {"agent_id": "agent-1", "agent_type": "other", "original_content": content}
    fields.update(overrides)
    return db.create_session(**fields)


class TestKeyTerms:
    """Tests for term extraction."""

    def test_frequency_order(self):
        """Test terms are ranked by how often they occur."""
        text = "cache cache cache index index query"
        assert extract_key_terms(text) == ["cache", "index", "query"]

    def test_short_and_stop_words_removed(self):
        """Test words of three letters or fewer and stop words are dropped."""
        assert extract_key_terms("the cat and this dog would bark") == ["bark"]

    def test_punctuation_stripped(self):
        """Test punctuation does not stick to terms."""
        assert extract_key_terms("Deploy, deploy! (deploy)") == ["deploy"]

    def test_capped(self):
        """Test at most eight terms are returned by default."""
        text = " ".join(f"word{i}" for i in range(20))
        assert len(extract_key_terms(text)) == 8

    def test_custom_rules(self):
        """Test stop words come from the supplied rules."""
        rules = ExtractionRules(stop_words=("cache",), max_terms=2)
        assert extract_key_terms("cache index index query", rules=rules) == ["index", "query"]


class TestFindSimilar:
    """Tests for SimilarityMatcher in both capability modes."""

    def test_related_text_finds_session(self, db, matcher):
        """Test related free text finds the saved session."""
        session_id = add(
            db,
            "We decided to use PostgreSQL for the database. `SELECT * FROM users`",
            tags=["db"],
        )
        results = matcher.find_similar("I am discussing postgresql and databases")
        assert session_id in [r.session_id for r in results]

    def test_any_term_matches(self, db, matcher):
        """Test sessions sharing a single key term are returned."""
        first = add(db, "notes on kubernetes rollouts")
        second = add(db, "terraform modules layout")
        add(db, "lunch menu")
        results = matcher.find_similar("kubernetes and terraform")
        assert {r.session_id for r in results} == {first, second}

    def test_no_shared_terms(self, db, matcher):
        """Test text sharing no qualifying word returns nothing."""
        add(db, "notes on kubernetes rollouts")
        assert matcher.find_similar("zebra giraffe") == []

    def test_shared_stem_is_not_a_shared_word(self, db, matcher):
        """Test word variants with a common stem do not count as shared terms."""
        add(db, "the connection pool was exhausted")
        assert matcher.find_similar("connected exhausting pools") == []

    def test_only_stop_words(self, db, matcher):
        """Test text with no qualifying terms short-circuits to empty."""
        add(db, "this would have been there")
        assert matcher.find_similar("this would have been there") == []

    def test_limit(self, db, matcher):
        """Test the result limit."""
        for i in range(4):
            add(db, f"kubernetes note {i}")
        assert len(matcher.find_similar("kubernetes", limit=2)) == 2

    def test_based_on(self, matcher):
        """Test the reported basis terms."""
        assert matcher.based_on("kafka kafka topics", count=1) == ["kafka"]
