"""UI widgets for the Chat Context TUI."""

from typing import Optional

from rich.text import Text
from textual.app import ComposeResult
from textual.containers import ScrollableContainer
from textual.widgets import ListItem, Static

from ..index.search import HIGHLIGHT_END, HIGHLIGHT_START
from ..models import SearchResult, Session

AGENT_STYLES = {
    "claude": ("C", "bold magenta"),
    "cursor": ("U", "bold cyan"),
    "other": ("?", "bold white"),
}


def truncate(text: str, max_len: int = 100) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[:max_len - 3] + "..."


def agent_badge(agent_type: str) -> tuple[str, str]:
    return AGENT_STYLES.get(agent_type, AGENT_STYLES["other"])


def highlighted_snippet(snippet: str, base_style: str = "white") -> Text:
    """Render a search snippet, turning <mark> spans into highlighted text."""
    text = Text()
    rest = snippet.replace("\n", " ")
    while rest:
        start = rest.find(HIGHLIGHT_START)
        if start == -1:
            text.append(rest, style=base_style)
            break
        text.append(rest[:start], style=base_style)
        rest = rest[start + len(HIGHLIGHT_START):]
        end = rest.find(HIGHLIGHT_END)
        if end == -1:
            text.append(rest, style="bold black on yellow")
            break
        text.append(rest[:end], style="bold black on yellow")
        rest = rest[end + len(HIGHLIGHT_END):]
    return text


class SessionItem(ListItem):
    """List item for a stored session, optionally carrying its search hit."""

    def __init__(self, session: Session, result: Optional[SearchResult] = None):
        super().__init__()
        self.session = session
        self.result = result
        self._static: Optional[Static] = None

    def compose(self) -> ComposeResult:
        self._static = Static(self._build_text(100))
        yield self._static

    def on_resize(self, event) -> None:
        """Update text when resized."""
        if self._static:
            self._static.update(self._build_text(self.size.width))

    def _build_text(self, width: int) -> Text:
        """Build the display text based on available width."""
        # created_at is ISO-8601; show "MM-DD HH:MM"
        created = self.session.created_at
        date_str = f"{created[5:10]} {created[11:16]}" if len(created) >= 16 else "??-?? ??:??"
        icon, icon_style = agent_badge(self.session.agent_type)
        project = self.session.project_context or "-"

        text = Text()
        text.append(date_str, style="cyan")
        text.append(" │ ", style="dim")
        text.append(f"{icon} ", style=icon_style)
        text.append(f"{project[:12]:<12}", style="green")
        text.append(" │ ", style="dim")

        prefix_width = 36  # date(11) + sep(3) + icon(2) + project(12) + sep(3) + padding(5)
        desc_width = max(20, width - prefix_width)
        title = self.session.title.replace("\n", " ").strip() or "(untitled)"
        text.append(truncate(title, desc_width), style="bold white")

        return text


class SessionDetailPanel(ScrollableContainer, can_focus=True):
    """Scrollable panel showing session details."""

    CONTENT_PREVIEW_CHARS = 4000

    def __init__(self, id: str = None):
        super().__init__(id=id)
        self.session: Optional[Session] = None

    def update(self, text: Text) -> None:
        """Update the content (replaces all content)."""
        for child in list(self.children):
            child.remove()
        self.mount(Static(text, markup=False))

    @classmethod
    def build_session_text(cls, session: Session, result: Optional[SearchResult] = None) -> Text:
        """Build the Rich Text shown for a session."""
        text = Text()

        text.append("━━━ Session Details ━━━\n", style="bold cyan")
        text.append("\n")

        icon, icon_style = agent_badge(session.agent_type)
        text.append("Agent: ", style="bold")
        text.append(f"{icon} {session.agent_type}", style=icon_style)
        text.append(f" ({session.agent_id})\n", style="dim")
        text.append("Title: ", style="bold")
        text.append(f"{truncate(session.title, 60)}\n")
        text.append("Project: ", style="bold")
        if session.project_context:
            text.append(f"{session.project_context}\n", style="green")
        else:
            text.append("(none)\n", style="dim")
        text.append("Tags: ", style="bold")
        if session.tags:
            text.append(", ".join(session.tags) + "\n", style="yellow")
        else:
            text.append("(none)\n", style="dim")
        text.append("Created: ", style="bold")
        text.append(f"{session.created_at}\n")
        text.append("Updated: ", style="bold")
        text.append(f"{session.updated_at}\n")
        text.append("Size: ", style="bold")
        text.append(f"{session.content_length} chars\n")
        text.append("Session ID: ", style="bold")
        text.append(f"{session.id}\n", style="dim")
        if session.session_hash:
            text.append("Hash: ", style="bold")
            text.append(f"{session.session_hash}\n", style="dim")
        text.append("\n")

        if result is not None and result.matched_content:
            text.append("┌─ Match ", style="bold yellow")
            if result.rank is not None:
                text.append(f"(rank {result.rank:.2f}) ", style="yellow")
            text.append("\n")
            text.append("│ ", style="yellow")
            text.append_text(highlighted_snippet(result.matched_content))
            text.append("\n")
            text.append("└───────────────────────────────────────\n", style="yellow")
            text.append("\n")

        text.append("┌─ Content ─────────────────────────────\n", style="bold green")
        content = session.original_content[:cls.CONTENT_PREVIEW_CHARS]
        for line in content.split("\n"):
            text.append("│ ", style="green")
            text.append(f"{line}\n")
        if session.content_length > cls.CONTENT_PREVIEW_CHARS:
            text.append("│ ", style="green")
            text.append("... (truncated)\n", style="dim")
        text.append("└───────────────────────────────────────\n", style="green")
        text.append("\n")

        text.append("Press ", style="dim")
        text.append("s", style="bold")
        text.append(" for similar | ", style="dim")
        text.append("d", style="bold")
        text.append(" to delete | ", style="dim")
        text.append("Tab", style="bold")
        text.append(" switch panes", style="dim")

        return text

    def show_session(self, session: Session, result: Optional[SearchResult] = None):
        """Update display with session info."""
        self.session = session
        self.update(self.build_session_text(session, result))

    def clear_display(self):
        """Clear the display."""
        self.session = None
        self.update(Text("Select a session to view details", style="dim"))
