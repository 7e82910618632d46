"""Chat Context Browser TUI Application."""

import logging
from typing import Optional

from rich.text import Text
from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, Input, ListView, Static

from .config import HARD_MAX_SEARCH_RESULTS
from .index import SearchEngine, SessionDatabase, SimilarityMatcher
from .models import AGENT_TYPES, SearchFilters, SearchResult, Session
from .ui import APP_CSS, SessionDetailPanel, SessionItem

logger = logging.getLogger(__name__)

# (session, hit) pairs; hit is None outside of search results
Row = tuple[Session, Optional[SearchResult]]


class ChatContextBrowser(App):
    """TUI for browsing, searching and pruning stored chat sessions."""

    CSS = APP_CSS

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("tab", "switch_pane", "Tab: Pane", priority=True),
        Binding("escape", "back_to_list", "Back"),
        Binding("slash", "activate_search", "Search"),
        Binding("s", "find_similar", "Similar"),
        Binding("f", "cycle_filter", "Filter"),
        Binding("d", "delete_session", "Delete"),
        Binding("R", "refresh", "Refresh"),
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
    ]

    LIST_LIMIT = HARD_MAX_SEARCH_RESULTS

    def __init__(
        self,
        db: SessionDatabase,
        agent_type_filter: Optional[str] = None,
        project_filter: Optional[str] = None,
    ):
        super().__init__()
        self.db = db
        self.search_engine = SearchEngine(db)
        self.matcher = SimilarityMatcher(self.search_engine)

        # Active agent type filter (None = all)
        self.active_agent_filter: Optional[str] = agent_type_filter
        self.project_filter = project_filter

        self.rows: list[Row] = []
        self.selected: Optional[Row] = None
        self.focus_pane = "list"
        self._result_mode = False

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        with Horizontal():
            with Vertical(id="left-container"):
                yield Static("", id="filter-bar")
                yield Input(placeholder="Search sessions... (Enter to search, Escape to cancel)", id="search-input")
                with Vertical(id="session-container"):
                    yield Static("[bold]Sessions[/] [dim](newest first)[/]", id="session-header")
                    yield ListView(id="session-list")
            with Vertical(id="detail-container"):
                yield SessionDetailPanel(id="detail-panel")
        yield Footer()

    def on_mount(self):
        """Load sessions when app mounts."""
        self.title = "Chat Context Browser"
        self.sub_title = f"{self.db.db_path} ({self.db.capability})"
        self._update_filter_bar()
        self._load_recent_background()

    # -- loading --

    @work(exclusive=True, thread=True)
    def _load_recent_background(self):
        """Load the newest sessions for the active filters."""
        sessions = self.db.list_recent(
            limit=self.LIST_LIMIT,
            agent_type=self.active_agent_filter,
            project_context=self.project_filter,
        )
        rows = [(s, None) for s in sessions]
        self.call_from_thread(self._show_rows, rows, self._default_header(len(rows)), False)

    @work(exclusive=True, thread=True)
    def _search_background(self, query: str):
        filters = SearchFilters(
            query=query,
            agent_type=self.active_agent_filter,
            project_context=self.project_filter,
            limit=self.LIST_LIMIT,
        )
        try:
            results = self.search_engine.search(filters)
        except Exception as e:
            logger.error(f"Search failed for {query!r}: {e}")
            self.call_from_thread(self.notify, str(e), title="Search Failed", severity="error")
            return
        rows = [(r.session, r) for r in results]
        header = f"[bold yellow]Search:[/] [white]{query}[/] [dim]({len(rows)} matches)[/]"
        self.call_from_thread(self._show_rows, rows, header, True)

    @work(exclusive=True, thread=True)
    def _similar_background(self, session: Session):
        based_on = self.matcher.based_on(session.original_content)
        # One extra slot since the source session matches itself
        results = self.matcher.find_similar(session.original_content, limit=11)
        rows = [(r.session, r) for r in results if r.session_id != session.id][:10]
        header = (
            f"[bold magenta]Similar:[/] [white]{session.title[:30]}[/] "
            f"[dim](based on: {', '.join(based_on) or 'nothing'})[/]"
        )
        self.call_from_thread(self._show_rows, rows, header, True)

    def _default_header(self, count: int) -> str:
        if self.active_agent_filter:
            return f"[bold]{self.active_agent_filter}[/] [dim]({count} sessions)[/]"
        return f"[bold]All Sessions[/] [dim]({count} newest first)[/]"

    def _show_rows(self, rows: list[Row], header: str, result_mode: bool):
        """Replace the list contents (must be called from main thread)."""
        self.rows = rows
        self._result_mode = result_mode
        self.query_one("#session-container").set_class(result_mode, "results")
        self.query_one("#session-header", Static).update(header)

        session_list = self.query_one("#session-list", ListView)
        session_list.clear()
        session_list.mount(*[SessionItem(session, result) for session, result in rows])

        detail = self.query_one("#detail-panel", SessionDetailPanel)
        if rows:
            session_list.index = 0
        else:
            self.selected = None
            text = Text("No sessions found.", style="bold red")
            if self.db.count_sessions() == 0:
                text.append("\n\nSave one with: chat-context save FILE --agent-id ID", style="dim")
            detail.update(text)

        session_list.focus()
        self.focus_pane = "list"
        self._update_filter_bar()

    def _update_filter_bar(self):
        """Update the filter bar display."""
        text = Text()
        text.append("Filter: ", style="dim")
        for option in (None,) + AGENT_TYPES:
            label = option or "All"
            if self.active_agent_filter == option:
                text.append(f"[●{label}] ", style="bold cyan")
            else:
                text.append(f"[○{label}] ", style="dim")
        if self.project_filter:
            text.append(f" project={self.project_filter}", style="green")
        text.append(f" | {len(self.rows)} shown", style="dim")
        self.query_one("#filter-bar", Static).update(text)

    # -- actions --

    def action_cycle_filter(self):
        """Cycle through agent type filters."""
        options = [None] + list(AGENT_TYPES)
        try:
            current_idx = options.index(self.active_agent_filter)
        except ValueError:
            current_idx = 0
        self.active_agent_filter = options[(current_idx + 1) % len(options)]
        self._load_recent_background()

    def action_refresh(self):
        self._load_recent_background()

    def action_activate_search(self):
        """Activate search mode (/)."""
        search_input = self.query_one("#search-input", Input)
        search_input.add_class("visible")
        search_input.value = ""
        search_input.focus()

    def _cancel_search(self):
        """Cancel search input without executing."""
        search_input = self.query_one("#search-input", Input)
        search_input.remove_class("visible")
        search_input.value = ""
        self.query_one("#session-list", ListView).focus()
        self.focus_pane = "list"

    @on(Input.Submitted, "#search-input")
    def on_search_submitted(self, event: Input.Submitted):
        """Handle search input submission."""
        query = event.value.strip()
        self.query_one("#search-input", Input).remove_class("visible")
        if not query:
            self._cancel_search()
            return
        self._search_background(query)

    def action_find_similar(self):
        if self.selected:
            self._similar_background(self.selected[0])

    def action_delete_session(self):
        if not self.selected:
            return
        session = self.selected[0]
        if self.db.delete_session(session.id):
            self.notify(f"Deleted: {session.title}", title="Session Deleted")
        else:
            self.notify(f"Session not found: {session.id}", title="Delete Failed", severity="warning")
        self._load_recent_background()

    def action_switch_pane(self):
        """Toggle focus between the session list and the detail panel."""
        if self.focus_pane == "list":
            self.focus_pane = "detail"
            self.query_one("#detail-panel", SessionDetailPanel).focus()
        else:
            self.focus_pane = "list"
            self.query_one("#session-list", ListView).focus()

    def action_back_to_list(self):
        """Escape: cancel input, leave results, or quit."""
        search_input = self.query_one("#search-input", Input)
        if search_input.has_focus:
            self._cancel_search()
        elif self.focus_pane == "detail":
            self.action_switch_pane()
        elif self._result_mode:
            self._load_recent_background()
        else:
            self.action_quit()

    def action_cursor_down(self):
        if self.focus_pane == "detail":
            self.query_one("#detail-panel", SessionDetailPanel).scroll_down()
        else:
            self.query_one("#session-list", ListView).action_cursor_down()

    def action_cursor_up(self):
        if self.focus_pane == "detail":
            self.query_one("#detail-panel", SessionDetailPanel).scroll_up()
        else:
            self.query_one("#session-list", ListView).action_cursor_up()

    @on(ListView.Highlighted, "#session-list")
    def on_session_highlighted(self, event: ListView.Highlighted):
        """Show the highlighted session in the detail panel."""
        if event.item and isinstance(event.item, SessionItem):
            self.selected = (event.item.session, event.item.result)
            detail = self.query_one("#detail-panel", SessionDetailPanel)
            detail.show_session(event.item.session, event.item.result)
