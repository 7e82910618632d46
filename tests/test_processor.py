"""Tests for chat content processing."""

import hashlib

import pytest

from chat_context.processor import (
    EMPTY_SUMMARY,
    ChatContentProcessor,
    compute_content_hash,
)
from chat_context.rules import ExtractionRules

POSTGRES_CHAT = "We decided to use PostgreSQL for the database. `SELECT * FROM users`"


@pytest.fixture
def processor():
    return ChatContentProcessor()


class TestProcess:
    """Tests for the combined process() output."""

    def test_short_chat(self, processor):
        """Test the full metadata set for a short chat."""
        result = processor.process(POSTGRES_CHAT)

        assert result.key_topics == ["postgresql", "database"]
        assert result.decisions == ["use PostgreSQL for the database."]
        assert result.code_snippets == []
        assert result.generated_title == "Database Discussion"
        assert result.summary.startswith("We decided to use PostgreSQL for the database")
        assert result.summary.endswith("Topics discussed: postgresql, database.")
        assert result.word_count == 12
        assert result.participant_count == 1
        assert result.content_hash == compute_content_hash(POSTGRES_CHAT)

    def test_content_hash(self):
        """Test the digest is a truncated sha256."""
        digest = compute_content_hash("abc")
        assert digest == hashlib.sha256(b"abc").hexdigest()[:16]
        assert compute_content_hash("abc") == digest
        assert compute_content_hash("abd") != digest

    def test_participants(self, processor):
        """Test distinct speaker prefixes are counted."""
        chat = "User: hi\nAssistant: hello\nUser: bye"
        assert processor.count_participants(chat) == 2
        assert processor.count_participants("no speakers here") == 1


class TestCodeSnippets:
    """Tests for code extraction."""

    def test_fenced_block(self, processor):
        """Test fenced code keeps its language and preceding sentence."""
        chat = "Here is the fix.\n```python\ndef add(a, b):\n    return a + b\n```\n"
        snippets = processor.extract_code_snippets(chat)

        assert len(snippets) == 1
        assert snippets[0].language == "python"
        assert snippets[0].content == "def add(a, b):\n    return a + b"
        assert snippets[0].context == "Here is the fix."

    def test_fence_without_language(self, processor):
        """Test an untagged fence is reported as plain."""
        snippets = processor.extract_code_snippets("```\nmake build && make test\n```")
        assert [s.language for s in snippets] == ["plain"]

    def test_short_block_skipped(self, processor):
        """Test tiny fenced bodies are ignored."""
        assert processor.extract_code_snippets("```js\nx = 1\n```") == []

    def test_inline_code(self, processor):
        """Test inline spans that look like code are kept."""
        chat = "Try calling `fetchData(url, opts)` first, not `plain words here`."
        snippets = processor.extract_code_snippets(chat)
        assert [(s.language, s.content) for s in snippets] == [("inline", "fetchData(url, opts)")]


class TestTopics:
    """Tests for key topic extraction."""

    def test_whole_word_only(self, processor):
        """Test vocabulary terms must match whole words."""
        assert processor.extract_key_topics("Going home") == []

    def test_symbol_keywords(self, processor):
        """Test keywords containing punctuation."""
        assert processor.extract_key_topics("C++ templates") == ["c++"]

    def test_quoted_terms_and_extensions(self, processor):
        """Test quoted strings and file extensions become topics."""
        topics = processor.extract_key_topics('Set "retryLimit" in app.tsx')
        assert topics == ["retrylimit", ".tsx"]

    def test_capped(self, processor):
        """Test at most twenty topics are returned."""
        chat = " ".join(ExtractionRules().keywords)
        assert len(processor.extract_key_topics(chat)) == 20

    def test_custom_vocabulary(self):
        """Test a processor built with different rules."""
        rules = ExtractionRules(tech_keywords=("zig",), concept_keywords=())
        assert ChatContentProcessor(rules).extract_key_topics("I like Zig and Python") == ["zig"]


class TestDecisions:
    """Tests for decision extraction."""

    def test_solution_marker(self, processor):
        """Test the "solution:" cue."""
        chat = "Solution: migrate the sessions table to WAL mode"
        assert processor.extract_decisions(chat) == ["migrate the sessions table to WAL mode"]

    def test_too_short_dropped(self, processor):
        """Test captured text must exceed the minimum length."""
        assert processor.extract_decisions("We should go.") == []

    def test_capped(self, processor):
        """Test at most ten decisions are returned."""
        chat = " ".join(f"We decided to ship feature number {i}." for i in range(15))
        assert len(processor.extract_decisions(chat)) == 10


class TestSummaryAndTitle:
    """Tests for summary and title generation."""

    def test_empty_summary(self, processor):
        """Test content without usable sentences gets the stock summary."""
        assert processor.process("ok").summary == EMPTY_SUMMARY

    def test_summary_truncated(self, processor):
        """Test long summaries are cut to 500 characters."""
        chat = "problem " * 80 + "."
        summary = processor.process(chat).summary
        assert len(summary) == 500
        assert summary.endswith("...")

    def test_title_with_language(self, processor):
        """Test the code language leads the title."""
        chat = "Here is the fix.\n```python\ndef add(a, b):\n    return a + b\n```\n"
        assert processor.process(chat).generated_title == "PYTHON + Python Discussion"

    def test_title_without_topics_or_code(self, processor):
        """Test the dated fallback title."""
        assert processor.process("hello there friend").generated_title.startswith("Chat Session - ")

    def test_title_development_fallback(self, processor):
        """Test inline code with no topics yields a generic title."""
        chat = "call `total = compute(1)` now"
        assert processor.process(chat).generated_title == "Development Discussion"

    def test_title_non_primary_topic(self, processor):
        """Test ordinary topics are used when no primary topic is present."""
        assert processor.process("Discussing kubernetes rollout").generated_title == "Kubernetes Discussion"

    def test_title_truncated(self, processor):
        """Test titles are cut to 50 characters."""
        chat = 'Look at "abcdefghijklmnopqrstuvwxyzabcd" and "zyxwvutsrqponmlkjihgfedcbazyxw"'
        title = processor.process(chat).generated_title
        assert len(title) == 50
        assert title.endswith("...")
