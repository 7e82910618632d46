"""UI components for Chat Context."""

from .widgets import (
    SessionDetailPanel,
    SessionItem,
    highlighted_snippet,
    truncate,
)
from .styles import APP_CSS

__all__ = [
    "SessionItem",
    "SessionDetailPanel",
    "highlighted_snippet",
    "truncate",
    "APP_CSS",
]
