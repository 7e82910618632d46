"""Chat Context - searchable store for AI agent chat sessions."""

__version__ = "1.0.0"
