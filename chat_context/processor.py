"""Derive summary, topics, decisions and code fragments from raw chat text."""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .rules import DEFAULT_RULES, ExtractionRules

logger = logging.getLogger(__name__)

CODE_BLOCK_PATTERN = re.compile(r"```(\w+)?\n([\s\S]*?)```")
INLINE_CODE_PATTERN = re.compile(r"`([^`\n]{10,})`")
CONTEXT_PATTERN = re.compile(r"([^.\n!?]*[.\n!?]\s*)$")
QUOTED_PATTERN = re.compile(r'"([^"]{3,30})"')
FILE_EXTENSION_PATTERN = re.compile(r"\.\w{2,4}\b")
PARTICIPANT_PATTERN = re.compile(r"^(\w+):", re.MULTILINE)
SENTENCE_SPLIT_PATTERN = re.compile(r"[.!?]+")

EMPTY_SUMMARY = "Chat conversation with technical discussion."


def compute_content_hash(content: str) -> str:
    """Fixed-length digest of the raw text for client-side dedup checks."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


@dataclass
class CodeSnippet:
    language: str  # declared fence language, "plain" or "inline"
    content: str
    context: Optional[str] = None


@dataclass
class ProcessedContent:
    summary: str
    key_topics: list[str]
    decisions: list[str]
    code_snippets: list[CodeSnippet] = field(default_factory=list)
    generated_title: str = ""
    content_hash: str = ""
    word_count: int = 0
    participant_count: int = 1


class ChatContentProcessor:
    """Pure text-to-metadata transformation; never touches the store."""

    def __init__(self, rules: ExtractionRules = DEFAULT_RULES):
        self.rules = rules
        self._keyword_patterns = [
            (keyword, re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)", re.IGNORECASE))
            for keyword in rules.keywords
        ]
        self._decision_patterns = [
            re.compile(pattern, re.IGNORECASE) for pattern in rules.decision_patterns
        ]

    def process(self, content: str) -> ProcessedContent:
        code_snippets = self.extract_code_snippets(content)
        key_topics = self.extract_key_topics(content)
        decisions = self.extract_decisions(content)

        result = ProcessedContent(
            summary=self.generate_summary(content, key_topics),
            key_topics=key_topics,
            decisions=decisions,
            code_snippets=code_snippets,
            generated_title=self.generate_title(key_topics, code_snippets),
            content_hash=compute_content_hash(content),
            word_count=len(content.split()),
            participant_count=self.count_participants(content),
        )
        logger.debug(
            f"Processed {result.word_count} words: {len(key_topics)} topics, "
            f"{len(decisions)} decisions, {len(code_snippets)} code snippets"
        )
        return result

    def count_participants(self, content: str) -> int:
        """Count distinct `Name:` line prefixes, at least 1."""
        names = set(PARTICIPANT_PATTERN.findall(content))
        return len(names) or 1

    def extract_code_snippets(self, content: str) -> list[CodeSnippet]:
        snippets = []

        for match in CODE_BLOCK_PATTERN.finditer(content):
            language = match.group(1) or "plain"
            body = match.group(2).strip()
            if len(body) <= self.rules.min_code_length:
                continue
            before = content[max(0, match.start() - 200):match.start()]
            context_match = CONTEXT_PATTERN.search(before)
            context = context_match.group(1).strip() if context_match else ""
            snippets.append(CodeSnippet(language=language, content=body, context=context or None))

        for match in INLINE_CODE_PATTERN.finditer(content):
            body = match.group(1)
            # Plain words in backticks are not code
            if "(" in body or "{" in body or "=" in body:
                snippets.append(CodeSnippet(language="inline", content=body))

        return snippets

    def extract_key_topics(self, content: str) -> list[str]:
        topics: dict[str, None] = {}

        for keyword, pattern in self._keyword_patterns:
            if pattern.search(content):
                topics[keyword.lower()] = None

        for quoted in QUOTED_PATTERN.findall(content):
            term = quoted.lower()
            if self.rules.min_quoted_length <= len(term) <= self.rules.max_quoted_length:
                topics[term] = None

        for extension in FILE_EXTENSION_PATTERN.findall(content):
            topics[extension.lower()] = None

        return list(topics)[:self.rules.max_topics]

    def extract_decisions(self, content: str) -> list[str]:
        decisions = []
        for pattern in self._decision_patterns:
            for match in pattern.finditer(content):
                decision = match.group(1).strip()
                if self.rules.min_decision_length < len(decision) < self.rules.max_decision_length:
                    decisions.append(decision)
        return decisions[:self.rules.max_decisions]

    def generate_summary(self, content: str, key_topics: list[str]) -> str:
        sentences = [
            s.strip() for s in SENTENCE_SPLIT_PATTERN.split(content) if len(s.strip()) > 20
        ]
        if not sentences:
            return EMPTY_SUMMARY

        cues = self.rules.summary_cues
        important = [
            s for s in sentences
            if any(topic in s.lower() for topic in key_topics)
            or any(cue in s.lower() for cue in cues)
        ]
        selected = (important or sentences)[:self.rules.summary_sentences]
        summary = ". ".join(selected).strip()

        if key_topics:
            summary += f" Topics discussed: {', '.join(key_topics[:self.rules.summary_topics])}."

        limit = self.rules.max_summary_length
        if len(summary) > limit:
            summary = summary[:limit - 3] + "..."
        return summary

    def generate_title(self, key_topics: list[str], code_snippets: list[CodeSnippet]) -> str:
        if not key_topics and not code_snippets:
            return f"Chat Session - {datetime.now().strftime('%Y-%m-%d')}"

        parts = []
        languages = list(dict.fromkeys(s.language for s in code_snippets))
        if languages and languages[0] not in ("plain", "inline"):
            parts.append(languages[0].upper())

        primary = [t for t in key_topics if t in self.rules.primary_title_topics]
        chosen = primary or key_topics
        parts.extend(topic[:1].upper() + topic[1:] for topic in chosen[:2])

        if not parts:
            parts.append("Development")

        title = " + ".join(parts) + " Discussion"
        limit = self.rules.max_title_length
        if len(title) > limit:
            title = title[:limit - 3] + "..."
        return title
