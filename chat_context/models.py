"""Session records and search descriptors."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

AGENT_TYPES = ("claude", "cursor", "other")


def to_iso(dt: datetime) -> str:
    """Format a datetime as a UTC ISO-8601 string with millisecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


@dataclass
class Session:
    """One stored chat transcript plus its metadata."""

    # Identity
    id: str
    title: str
    agent_id: str
    agent_type: str  # one of AGENT_TYPES

    # Content
    original_content: str
    project_context: Optional[str] = None
    tags: list[str] = field(default_factory=list)

    # Timing (ISO-8601, UTC)
    created_at: str = ""
    updated_at: str = ""

    # Computed
    session_hash: Optional[str] = None

    @property
    def content_length(self) -> int:
        return len(self.original_content)


@dataclass(frozen=True)
class SearchFilters:
    """Immutable query descriptor.

    `tags` are OR-matched; `date_from`/`date_to` form a half-open range on
    `created_at`.
    """

    query: Optional[str] = None
    agent_type: Optional[str] = None
    project_context: Optional[str] = None
    tags: tuple[str, ...] = ()
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    limit: int = 10
    offset: int = 0


@dataclass
class SearchResult:
    """A session hit; `rank` and `matched_content` are only set on the indexed path."""

    session: Session
    rank: Optional[float] = None
    matched_content: Optional[str] = None

    @property
    def session_id(self) -> str:
        return self.session.id


@dataclass
class SessionStats:
    total_sessions: int
    sessions_by_agent: dict[str, int]
    sessions_by_project: dict[str, int]
    most_common_tags: list[tuple[str, int]] = field(default_factory=list)
    recent_activity: list[tuple[str, int]] = field(default_factory=list)
