"""Vocabulary and phrase patterns used for content extraction.

Everything here is plain data; `ChatContentProcessor` and `SimilarityMatcher`
compile it on construction, so a custom `ExtractionRules` can be swapped in
without touching the matching code.
"""

from dataclasses import dataclass

# Programming languages and technologies
TECH_KEYWORDS = (
    "javascript", "typescript", "python", "java", "c++", "c#", "go", "rust", "php",
    "react", "vue", "angular", "node", "express", "django", "flask", "spring",
    "sql", "mongodb", "postgresql", "mysql", "redis", "docker", "kubernetes",
    "aws", "azure", "gcp", "git", "github", "api", "rest", "graphql",
    "html", "css", "json", "xml", "yaml", "cli", "bash", "shell",
)

# Development concepts
CONCEPT_KEYWORDS = (
    "authentication", "authorization", "database", "deployment", "testing",
    "debugging", "optimization", "performance", "security", "error handling",
    "logging", "monitoring", "caching", "validation", "migration",
    "refactoring", "configuration", "environment", "build", "ci/cd",
)

# Each pattern captures the decision text in group 1.
DECISION_PATTERNS = (
    r"(?:decided|concluded|agreed|determined|resolved|chose)\s+(?:to|that)\s+([^.!?]+[.!?])",
    r"(?:solution|approach|strategy|plan):\s*([^.\n]+)",
    r"(?:we should|let's|I'll|we'll)\s+([^.!?\n]+[.!?]?)",
    r"(?:final|ultimate|best)\s+(?:decision|choice|solution):\s*([^.\n]+)",
)

# Words that make a sentence a good summary candidate
SUMMARY_CUES = (
    "problem", "solution", "issue", "error", "implement", "create", "build",
)

# Preferred over other topics when building a title
PRIMARY_TITLE_TOPICS = (
    "javascript", "typescript", "python", "react", "node", "express", "database", "api",
)

STOP_WORDS = (
    "the", "and", "that", "this", "with", "from", "they", "have", "been",
    "said", "each", "which", "their", "will", "about", "would", "there",
    "could", "other", "what", "when", "where", "these", "those", "into",
    "your", "just", "than", "then", "them", "were", "also", "some", "more",
    "very", "only", "over", "such", "here", "should", "because", "being",
)


@dataclass(frozen=True)
class ExtractionRules:
    tech_keywords: tuple[str, ...] = TECH_KEYWORDS
    concept_keywords: tuple[str, ...] = CONCEPT_KEYWORDS
    decision_patterns: tuple[str, ...] = DECISION_PATTERNS
    summary_cues: tuple[str, ...] = SUMMARY_CUES
    primary_title_topics: tuple[str, ...] = PRIMARY_TITLE_TOPICS
    stop_words: tuple[str, ...] = STOP_WORDS

    max_topics: int = 20
    max_decisions: int = 10
    min_decision_length: int = 10
    max_decision_length: int = 200
    min_quoted_length: int = 3
    max_quoted_length: int = 30
    min_code_length: int = 10
    summary_sentences: int = 3
    summary_topics: int = 5
    max_summary_length: int = 500
    max_title_length: int = 50

    # Similarity term extraction
    min_term_length: int = 4
    max_terms: int = 8

    @property
    def keywords(self) -> tuple[str, ...]:
        return self.tech_keywords + self.concept_keywords


DEFAULT_RULES = ExtractionRules()
