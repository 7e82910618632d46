"""Input checks applied before data reaches the store.

Each validator returns an error message, or None when the input is acceptable.
"""

import re
from datetime import datetime
from typing import Any, Optional

from .config import (
    HARD_MAX_SEARCH_RESULTS,
    MAX_CONTENT_BYTES,
    MAX_ID_LENGTH,
    MAX_PROJECT_CONTEXT_LENGTH,
    MAX_SEARCH_TAGS,
    MAX_TAGS,
    MAX_TITLE_LENGTH,
)
from .models import AGENT_TYPES

_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_SCRIPT_PATTERN = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]*>")
_JS_URL_PATTERN = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_PATTERN = re.compile(r"on\w+\s*=", re.IGNORECASE)


def validate_session_data(data: dict, is_update: bool = False) -> Optional[str]:
    """Check a create/update payload using the store's field names."""
    if not is_update:
        agent_id = data.get("agent_id")
        if not agent_id or not isinstance(agent_id, str):
            return "agent_id is required and must be a string"

        if data.get("agent_type") not in AGENT_TYPES:
            return f"agent_type must be one of: {', '.join(AGENT_TYPES)}"

        content = data.get("original_content")
        if not content or not isinstance(content, str):
            return "original_content is required and must be a string"
    else:
        if "agent_type" in data and data["agent_type"] not in AGENT_TYPES:
            return f"agent_type must be one of: {', '.join(AGENT_TYPES)}"
        content = data.get("original_content")
        if "original_content" in data and (not content or not isinstance(content, str)):
            return "original_content must be a non-empty string"

    if isinstance(content, str) and len(content.encode("utf-8")) > MAX_CONTENT_BYTES:
        return f"original_content exceeds maximum size of {MAX_CONTENT_BYTES // (1024 * 1024)}MB"

    title = data.get("title")
    if title is not None and (not isinstance(title, str) or len(title) > MAX_TITLE_LENGTH):
        return f"title must be a string with maximum length of {MAX_TITLE_LENGTH} characters"

    project = data.get("project_context")
    if project is not None and (
        not isinstance(project, str) or len(project) > MAX_PROJECT_CONTEXT_LENGTH
    ):
        return (
            f"project_context must be a string with maximum length of "
            f"{MAX_PROJECT_CONTEXT_LENGTH} characters"
        )

    tags = data.get("tags")
    if tags is not None:
        if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags):
            return "tags must be an array of strings"
        if len(tags) > MAX_TAGS:
            return f"maximum of {MAX_TAGS} tags allowed"

    return None


def validate_search_params(params: dict[str, Any]) -> Optional[str]:
    """Check raw (string-valued) search parameters."""
    limit = params.get("limit")
    if limit is not None:
        try:
            limit_value = int(limit)
        except (TypeError, ValueError):
            return f"limit must be a number between 1 and {HARD_MAX_SEARCH_RESULTS}"
        if not 1 <= limit_value <= HARD_MAX_SEARCH_RESULTS:
            return f"limit must be a number between 1 and {HARD_MAX_SEARCH_RESULTS}"

    offset = params.get("offset")
    if offset is not None:
        try:
            offset_value = int(offset)
        except (TypeError, ValueError):
            return "offset must be a non-negative number"
        if offset_value < 0:
            return "offset must be a non-negative number"

    agent_type = params.get("agent_type")
    if agent_type and agent_type not in AGENT_TYPES:
        return f"agent_type must be one of: {', '.join(AGENT_TYPES)}"

    for key in ("date_from", "date_to"):
        value = params.get(key)
        if value and not is_valid_iso_date(value):
            return f"{key} must be a valid ISO date string"

    tags = params.get("tags")
    if tags:
        tag_list = tags.split(",") if isinstance(tags, str) else list(tags)
        if len(tag_list) > MAX_SEARCH_TAGS:
            return f"maximum of {MAX_SEARCH_TAGS} tags allowed in search"

    return None


def is_valid_iso_date(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return False
    return True


def sanitize_string(value: Any, max_length: int = 1000) -> str:
    """Strip markup and script fragments, then truncate."""
    if not isinstance(value, str):
        return ""
    sanitized = _SCRIPT_PATTERN.sub("", value)
    sanitized = _TAG_PATTERN.sub("", sanitized)
    sanitized = _JS_URL_PATTERN.sub("", sanitized)
    sanitized = _EVENT_HANDLER_PATTERN.sub("", sanitized)
    return sanitized[:max_length].strip()


def validate_id(session_id: Any) -> bool:
    return (
        isinstance(session_id, str)
        and 0 < len(session_id) <= MAX_ID_LENGTH
        and bool(_ID_PATTERN.match(session_id))
    )
