#!/usr/bin/env python3
"""Chat Context - searchable store for AI agent chat sessions.

Entry point for the CLI application.
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from .config import (
    DEFAULT_CLEANUP_DAYS,
    DEFAULT_DB_PATH,
    DEFAULT_SEARCH_LIMIT,
    LOG_LEVEL,
    MAX_PROJECT_CONTEXT_LENGTH,
    MAX_TITLE_LENGTH,
)
from .index import SearchEngine, SessionDatabase, SimilarityMatcher, reset_database
from .models import AGENT_TYPES, SearchFilters, Session
from .processor import ChatContentProcessor, compute_content_hash
from .validation import (
    sanitize_string,
    validate_id,
    validate_search_params,
    validate_session_data,
)

logger = logging.getLogger(__name__)


def _open_db(args) -> SessionDatabase:
    return SessionDatabase(args.db)


def _split_tags(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


def _read_content(path: Optional[str]) -> str:
    if not path or path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _error(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _print_session_line(session: Session, extra: Optional[str] = None):
    project = session.project_context or "-"
    print(f"[{session.agent_type}] {session.title[:60]}")
    print(f"   ID: {session.id}")
    print(f"   Agent: {session.agent_id} | Project: {project} | Created: {session.created_at}")
    if session.tags:
        print(f"   Tags: {', '.join(session.tags)}")
    if extra:
        print(f"   {extra}")
    print()


def cmd_browse(args):
    """Launch the TUI browser."""
    from .app import ChatContextBrowser

    with _open_db(args) as db:
        app = ChatContextBrowser(
            db,
            agent_type_filter=args.agent_type,
            project_filter=args.project,
        )
        app.run()
    return 0


def cmd_save(args):
    """Store a chat transcript read from a file or stdin."""
    try:
        content = _read_content(args.file)
    except OSError as e:
        return _error(f"cannot read {args.file}: {e}")

    title = sanitize_string(args.title, MAX_TITLE_LENGTH) if args.title else None
    tags = _split_tags(args.tags)
    if args.auto_title or args.auto_tags:
        processed = ChatContentProcessor().process(content)
        if args.auto_title and not title:
            title = processed.generated_title
        if args.auto_tags and not tags:
            tags = processed.key_topics[:5]

    data = {
        "agent_id": args.agent_id,
        "agent_type": args.agent_type,
        "original_content": content,
        "title": title,
        "project_context": sanitize_string(args.project, MAX_PROJECT_CONTEXT_LENGTH) if args.project else None,
        "tags": tags,
    }
    error = validate_session_data(data)
    if error:
        return _error(error)

    with _open_db(args) as db:
        duplicates = db.find_by_hash(compute_content_hash(content))
        if duplicates:
            ids = ", ".join(s.id for s in duplicates[:3])
            logger.warning(f"Identical content already stored as {ids}")
        session_id = db.create_session(**data)

    print(f"✓ Saved session {session_id}")
    return 0


def cmd_get(args):
    """Print one session including its content."""
    if not validate_id(args.session_id):
        return _error("invalid session id")

    with _open_db(args) as db:
        session = db.get_session(args.session_id)
    if not session:
        return _error(f"session not found: {args.session_id}")

    if args.json:
        print(json.dumps(asdict(session), indent=2))
        return 0

    _print_session_line(session)
    print(f"Updated: {session.updated_at}")
    print(f"Hash: {session.session_hash}")
    print("-" * 60)
    print(session.original_content)
    return 0


def cmd_search(args):
    """Search sessions from CLI."""
    params = {
        "limit": args.limit,
        "offset": args.offset,
        "agent_type": args.agent_type,
        "date_from": args.date_from,
        "date_to": args.date_to,
        "tags": args.tags,
    }
    error = validate_search_params(params)
    if error:
        return _error(error)

    filters = SearchFilters(
        query=sanitize_string(args.query) if args.query else None,
        agent_type=args.agent_type,
        project_context=args.project,
        tags=tuple(_split_tags(args.tags)),
        date_from=args.date_from,
        date_to=args.date_to,
        limit=args.limit,
        offset=args.offset,
    )

    with _open_db(args) as db:
        results = SearchEngine(db).search(filters)
        capability = db.capability

    if not results:
        print(f"No matches found for: {args.query or '(all sessions)'}")
        return 0

    print(f"Found {len(results)} sessions ({capability}):\n")
    for result in results:
        extra = None
        if result.matched_content:
            extra = f"Match: {result.matched_content.replace(chr(10), ' ')[:120]}"
        if result.rank is not None:
            extra = f"Rank: {result.rank:.2f}" + (f" | {extra}" if extra else "")
        _print_session_line(result.session, extra)
    return 0


def cmd_recent(args):
    """List the newest sessions."""
    with _open_db(args) as db:
        sessions = db.list_recent(limit=args.limit, agent_type=args.agent_type)

    if not sessions:
        print("No sessions found.")
        return 0
    for session in sessions:
        _print_session_line(session)
    return 0


def cmd_by_agent(args):
    """List sessions saved by one agent id."""
    with _open_db(args) as db:
        sessions = db.list_by_agent(args.agent_id, limit=args.limit)

    if not sessions:
        print(f"No sessions found for agent: {args.agent_id}")
        return 0
    for session in sessions:
        _print_session_line(session)
    return 0


def cmd_similar(args):
    """Find sessions related to a piece of text."""
    text = args.text if args.text else _read_content(args.file)

    with _open_db(args) as db:
        matcher = SimilarityMatcher(SearchEngine(db))
        based_on = matcher.based_on(text)
        results = matcher.find_similar(text, limit=args.limit)

    print(f"Based on: {', '.join(based_on) or '(no key terms)'}")
    print()
    if not results:
        print("No similar sessions found.")
        return 0
    for result in results:
        _print_session_line(result.session)
    return 0


def cmd_delete(args):
    """Delete one or more sessions by id."""
    invalid = [sid for sid in args.session_ids if not validate_id(sid)]
    if invalid:
        return _error(f"invalid session id: {invalid[0]}")

    with _open_db(args) as db:
        if len(args.session_ids) == 1:
            deleted = 1 if db.delete_session(args.session_ids[0]) else 0
        else:
            deleted = db.delete_sessions(args.session_ids)

    print(f"Deleted {deleted} of {len(args.session_ids)} sessions")
    return 0 if deleted else 1


def cmd_cleanup(args):
    """Delete sessions older than a number of days."""
    if args.older_than_days < 0:
        return _error("--older-than-days must be non-negative")

    with _open_db(args) as db:
        deleted = db.delete_older_than(
            args.older_than_days,
            agent_type=args.agent_type,
            project_context=args.project,
        )

    print(f"✓ Deleted {deleted} sessions older than {args.older_than_days} days")
    return 0


def cmd_stats(args):
    """Show database statistics."""
    with _open_db(args) as db:
        stats = db.stats()
        capability = db.capability
        indexed = db.count_indexed()

    print("Database Statistics")
    print("=" * 60)
    print()
    print(f"Sessions: {stats.total_sessions}")
    print(f"Search: {capability} ({indexed} indexed)")
    print()

    db_path = Path(args.db) if args.db else DEFAULT_DB_PATH
    if db_path.exists():
        size_mb = db_path.stat().st_size / (1024 * 1024)
        print(f"Database size: {size_mb:.2f} MB")
        print()

    print("Sessions by agent type:")
    for agent_type in AGENT_TYPES:
        count = stats.sessions_by_agent.get(agent_type, 0)
        if count > 0:
            print(f"  {agent_type}: {count}")
    print()

    print("Sessions by project:")
    for project, count in sorted(stats.sessions_by_project.items(), key=lambda kv: -kv[1]):
        print(f"  {project}: {count}")
    print()

    if stats.most_common_tags:
        print("Most common tags:")
        for tag, count in stats.most_common_tags:
            print(f"  {tag}: {count}")
        print()

    if stats.recent_activity:
        print("Last 7 days:")
        for day, count in stats.recent_activity:
            print(f"  {day}: {count}")
    return 0


def cmd_history(args):
    """Show recent searches."""
    with _open_db(args) as db:
        rows = db.recent_searches(limit=args.limit)

    if not rows:
        print("No search history found.")
        return 0

    print("Recent Searches")
    print("=" * 100)
    print()
    print(f"{'Query':<50} {'Mode':<10} {'Results':<10} {'Time (ms)':<12}")
    print("-" * 100)
    for row in rows:
        query = (row["query"] or "(all)")[:50]
        print(
            f"{query:<50} {row['capability'] or '-':<10} "
            f"{row['result_count'] or 0:<10} {row['search_time_ms'] or 0:<12}"
        )
    return 0


def cmd_process(args):
    """Print the extracted metadata for a transcript as JSON."""
    try:
        content = _read_content(args.file)
    except OSError as e:
        return _error(f"cannot read {args.file}: {e}")

    processed = ChatContentProcessor().process(content)
    print(json.dumps(asdict(processed), indent=2))
    return 0


def cmd_reset(args):
    """Delete the database files and recreate an empty store."""
    if not args.yes:
        return _error("refusing to reset without --yes")

    db = reset_database(args.db)
    try:
        print(f"✓ Reset database at {db.db_path} ({db.capability})")
    finally:
        db.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Store, search and browse AI agent chat sessions",
        prog="chat-context",
    )
    parser.add_argument("--version", "-v", action="store_true", help="Show version")
    parser.add_argument("--db", help=f"Database path (default: {DEFAULT_DB_PATH})")
    parser.add_argument(
        "--log-level",
        default=LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Logging level for stderr output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    browse_parser = subparsers.add_parser("browse", help="Launch TUI browser (default)")
    browse_parser.add_argument("--agent-type", "-t", choices=AGENT_TYPES, help="Filter to agent type")
    browse_parser.add_argument("--project", "-p", help="Filter to project")

    save_parser = subparsers.add_parser("save", help="Save a chat transcript")
    save_parser.add_argument("file", nargs="?", help="Transcript file (default: stdin)")
    save_parser.add_argument("--agent-id", "-a", required=True, help="Saving agent's id")
    save_parser.add_argument("--agent-type", "-t", choices=AGENT_TYPES, default="other")
    save_parser.add_argument("--title", help="Session title")
    save_parser.add_argument("--project", "-p", help="Project context")
    save_parser.add_argument("--tags", help="Comma-separated tags")
    save_parser.add_argument("--auto-title", action="store_true", help="Generate title from content")
    save_parser.add_argument("--auto-tags", action="store_true", help="Use extracted topics as tags")

    get_parser = subparsers.add_parser("get", help="Show one session")
    get_parser.add_argument("session_id")
    get_parser.add_argument("--json", action="store_true", help="Print as JSON")

    search_parser = subparsers.add_parser("search", help="Search sessions")
    search_parser.add_argument("query", nargs="?", help="Search query")
    search_parser.add_argument("--agent-type", "-t", choices=AGENT_TYPES)
    search_parser.add_argument("--project", "-p", help="Filter to project")
    search_parser.add_argument("--tags", help="Comma-separated tags (any)")
    search_parser.add_argument("--date-from", help="ISO date, inclusive")
    search_parser.add_argument("--date-to", help="ISO date, exclusive")
    search_parser.add_argument("--limit", "-l", type=int, default=DEFAULT_SEARCH_LIMIT)
    search_parser.add_argument("--offset", type=int, default=0)

    recent_parser = subparsers.add_parser("recent", help="List newest sessions")
    recent_parser.add_argument("--agent-type", "-t", choices=AGENT_TYPES)
    recent_parser.add_argument("--limit", "-l", type=int, default=DEFAULT_SEARCH_LIMIT)

    by_agent_parser = subparsers.add_parser("by-agent", help="List sessions for an agent id")
    by_agent_parser.add_argument("agent_id")
    by_agent_parser.add_argument("--limit", "-l", type=int, default=20)

    similar_parser = subparsers.add_parser("similar", help="Find sessions similar to text")
    similar_parser.add_argument("--text", help="Text to match (default: read FILE or stdin)")
    similar_parser.add_argument("file", nargs="?", help="File with text to match")
    similar_parser.add_argument("--limit", "-l", type=int, default=5)

    delete_parser = subparsers.add_parser("delete", help="Delete sessions by id")
    delete_parser.add_argument("session_ids", nargs="+")

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old sessions")
    cleanup_parser.add_argument("--older-than-days", type=float, default=DEFAULT_CLEANUP_DAYS)
    cleanup_parser.add_argument("--agent-type", "-t", choices=AGENT_TYPES)
    cleanup_parser.add_argument("--project", "-p")

    subparsers.add_parser("stats", help="Database statistics")

    history_parser = subparsers.add_parser("history", help="Recent searches")
    history_parser.add_argument("--limit", "-l", type=int, default=20)

    process_parser = subparsers.add_parser("process", help="Extract topics, decisions and code as JSON")
    process_parser.add_argument("file", nargs="?", help="Transcript file (default: stdin)")

    reset_parser = subparsers.add_parser("reset", help="Delete and recreate the database")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")

    return parser


COMMANDS = {
    "browse": cmd_browse,
    "save": cmd_save,
    "get": cmd_get,
    "search": cmd_search,
    "recent": cmd_recent,
    "by-agent": cmd_by_agent,
    "similar": cmd_similar,
    "delete": cmd_delete,
    "cleanup": cmd_cleanup,
    "stats": cmd_stats,
    "history": cmd_history,
    "process": cmd_process,
    "reset": cmd_reset,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for chat-context CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if args.version:
        from . import __version__
        print(f"chat-context {__version__}")
        return 0

    if args.command is None:
        args = argparse.Namespace(
            db=args.db,
            agent_type=None,
            project=None,
        )
        return cmd_browse(args)

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
