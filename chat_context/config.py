"""Paths and limits, overridable through the environment."""

import os
from pathlib import Path

DEFAULT_DB_PATH = Path(
    os.environ.get(
        "CHAT_CONTEXT_DB_PATH",
        str(Path.home() / ".cache" / "chat-context" / "chat-context.db"),
    )
).expanduser()

LOG_LEVEL = os.environ.get("CHAT_CONTEXT_LOG_LEVEL", "WARNING").upper()

DISABLE_FTS = os.environ.get("CHAT_CONTEXT_DISABLE_FTS", "").lower() in ("1", "true", "yes")

MAX_CONTENT_BYTES = 50 * 1024 * 1024
MAX_TITLE_LENGTH = 500
MAX_PROJECT_CONTEXT_LENGTH = 1000
MAX_TAGS = 50
MAX_SEARCH_TAGS = 20
MAX_ID_LENGTH = 100

DEFAULT_CLEANUP_DAYS = 30
DEFAULT_SEARCH_LIMIT = 10
HARD_MAX_SEARCH_RESULTS = 100

# Seeded into server_config on first initialize; existing values are kept.
DEFAULT_SERVER_CONFIG = {
    "version": "1.0.0",
    "max_session_size": str(MAX_CONTENT_BYTES),
    "cleanup_days": str(DEFAULT_CLEANUP_DAYS),
    "enable_analytics": "true",
    "max_search_results": "50",
}
