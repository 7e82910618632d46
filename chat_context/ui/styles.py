"""CSS styles for the Chat Context TUI."""

APP_CSS = """
#left-container {
    width: 3fr;
}

#detail-container {
    width: 2fr;
    border-left: tall $secondary;
    padding: 0 1;
}

#filter-bar {
    height: 1;
    padding: 0 1;
    background: $boost;
}

#search-input {
    display: none;
    border: round $warning;
}

#search-input.visible {
    display: block;
}

#session-container {
    border: round $primary;
}

#session-container.results {
    border: round $accent;
}

#session-header {
    height: 1;
    padding: 0 1;
    color: $text-muted;
}

#session-list SessionItem {
    height: 1;
    padding: 0 1;
}

#detail-panel {
    scrollbar-gutter: stable;
}

#detail-panel:focus-within {
    background: $boost;
}
"""
