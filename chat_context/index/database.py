"""SQLite session store with an optional FTS5 index kept in lockstep."""

import json
import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional, Union

from ..config import DEFAULT_DB_PATH, DEFAULT_SERVER_CONFIG, DISABLE_FTS, HARD_MAX_SEARCH_RESULTS
from ..models import Session, SessionStats, to_iso, utc_now_iso
from ..processor import compute_content_hash

logger = logging.getLogger(__name__)


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


SCHEMA_VERSION = 1

CAPABILITY_INDEXED = "indexed"
CAPABILITY_FALLBACK = "fallback"

UPDATABLE_FIELDS = (
    "title",
    "agent_id",
    "agent_type",
    "project_context",
    "original_content",
    "tags",
)

# Keeps bulk deletes under SQLite's host parameter limit.
_DELETE_BATCH_SIZE = 500


class StoreNotInitializedError(RuntimeError):
    """Raised when the store is used before initialize() or after close()."""


class SessionDatabase:
    """Session table, supporting indexes and the text-search index.

    Construct one per process, call `initialize()` once at startup and
    `close()` at shutdown. Every mutation of the sessions table updates
    `sessions_fts` inside the same transaction when FTS5 is available.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        *,
        use_fts: Optional[bool] = None,
    ):
        self._db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._use_fts = (not DISABLE_FTS) if use_fts is None else use_fts
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False
        self._fts_available = False
        self._analytics_enabled = True
        self._lock = threading.RLock()

    def __enter__(self) -> "SessionDatabase":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def fts_available(self) -> bool:
        return self._fts_available

    @property
    def capability(self) -> str:
        return CAPABILITY_INDEXED if self._fts_available else CAPABILITY_FALLBACK

    # -- lifecycle --

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            if str(self._db_path) != ":memory:":
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                isolation_level=None,
            )
            self._connection.row_factory = sqlite3.Row
            # SQLite's LIKE and lower() only fold ASCII
            self._connection.create_function("casefold", 1, _casefold, deterministic=True)
            self._connection.execute("PRAGMA journal_mode = WAL")
            self._connection.execute("PRAGMA synchronous = NORMAL")
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self):
        """Create tables and indexes if absent. Safe to call on an existing store."""
        with self._lock:
            if self._initialized:
                return
            conn = self._get_connection()

            self._fts_available = self._use_fts and self._probe_fts(conn)
            if self._fts_available:
                logger.info("FTS5 available, using indexed search")
            else:
                logger.warning("FTS5 not available, using substring search fallback")

            self._ensure_schema(conn)
            self._seed_config(conn)
            if self._fts_available:
                self._ensure_fts(conn)
            elif self._table_exists(conn, "sessions_fts"):
                # Writes in this mode skip the index; rebuild on next indexed open.
                self._set_index_meta(conn, "fts_stale", "1")

            self._analytics_enabled = self._read_config(conn, "enable_analytics") == "true"
            self._initialized = True
            logger.info(f"Database initialized at {self._db_path} ({self.capability})")

    def close(self):
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
                self._initialized = False
                logger.info("Database connection closed")

    def _probe_fts(self, conn: sqlite3.Connection) -> bool:
        try:
            conn.execute("CREATE VIRTUAL TABLE IF NOT EXISTS _fts5_probe USING fts5(content)")
            conn.execute("DROP TABLE IF EXISTS _fts5_probe")
            return True
        except sqlite3.Error as e:
            logger.debug(f"FTS5 probe failed: {e}")
            return False

    def _ensure_schema(self, conn: sqlite3.Connection):
        current_version = self._get_schema_version(conn)
        if current_version < SCHEMA_VERSION:
            conn.executescript(self._get_schema_sql())
            self._set_schema_version(conn, SCHEMA_VERSION)

    def _get_schema_version(self, conn: sqlite3.Connection) -> int:
        try:
            row = conn.execute(
                "SELECT MAX(version) as v FROM schema_meta"
            ).fetchone()
            return row["v"] if row and row["v"] else 0
        except sqlite3.OperationalError:
            return 0

    def _set_schema_version(self, conn: sqlite3.Connection, version: int):
        conn.execute(
            "INSERT INTO schema_meta (version, description) VALUES (?, ?)",
            (version, f"Schema version {version}"),
        )

    def _get_schema_sql(self) -> str:
        return """
            CREATE TABLE IF NOT EXISTS schema_meta (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER DEFAULT (strftime('%s', 'now')),
                description TEXT
            );

            CREATE TABLE IF NOT EXISTS index_meta (
                key TEXT PRIMARY KEY,
                value TEXT
            );

            CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                agent_id TEXT NOT NULL,
                agent_type TEXT NOT NULL CHECK (agent_type IN ('claude', 'cursor', 'other')),
                project_context TEXT,
                original_content TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                session_hash TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_sessions_agent_id ON sessions(agent_id);
            CREATE INDEX IF NOT EXISTS idx_sessions_agent_type ON sessions(agent_type);
            CREATE INDEX IF NOT EXISTS idx_sessions_project_context ON sessions(project_context);
            CREATE INDEX IF NOT EXISTS idx_sessions_created_at ON sessions(created_at DESC);
            CREATE INDEX IF NOT EXISTS idx_sessions_session_hash ON sessions(session_hash);

            CREATE TABLE IF NOT EXISTS session_analytics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id TEXT NOT NULL,
                event_type TEXT NOT NULL,
                event_data TEXT,
                timestamp TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_session_analytics_session_id ON session_analytics(session_id);
            CREATE INDEX IF NOT EXISTS idx_session_analytics_event_type ON session_analytics(event_type);

            CREATE TABLE IF NOT EXISTS searches (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                query TEXT,
                capability TEXT,
                result_count INTEGER,
                top_session_ids TEXT,
                search_time_ms INTEGER,
                timestamp INTEGER DEFAULT (strftime('%s', 'now'))
            );

            CREATE TABLE IF NOT EXISTS server_config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """

    def _get_fts_sql(self) -> str:
        # rowid mirrors sessions.rowid so index rows can be removed by the
        # same predicate that selects the session rows.
        return """
            CREATE VIRTUAL TABLE IF NOT EXISTS sessions_fts USING fts5(
                id UNINDEXED,
                title,
                original_content,
                tags,
                tokenize='unicode61'
            );
        """

    def _ensure_fts(self, conn: sqlite3.Connection):
        conn.executescript(self._get_fts_sql())
        session_count = conn.execute("SELECT COUNT(*) as c FROM sessions").fetchone()["c"]
        indexed_count = conn.execute("SELECT COUNT(*) as c FROM sessions_fts").fetchone()["c"]
        stale = self._get_index_meta(conn, "fts_stale") == "1"
        if stale or session_count != indexed_count:
            logger.info(
                f"Rebuilding FTS index ({indexed_count} indexed, {session_count} sessions, stale={stale})"
            )
            self._rebuild_fts(conn)

    def _rebuild_fts(self, conn: sqlite3.Connection):
        conn.execute("BEGIN IMMEDIATE")
        try:
            conn.execute("DELETE FROM sessions_fts")
            conn.execute(
                """
                INSERT INTO sessions_fts(rowid, id, title, original_content, tags)
                SELECT rowid, id, title, original_content, tags FROM sessions
                """
            )
            self._set_index_meta(conn, "fts_stale", "0")
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def rebuild_index(self):
        """Repopulate the text-search index from the sessions table."""
        with self._lock:
            conn = self._conn()
            if self._fts_available:
                self._rebuild_fts(conn)

    def _table_exists(self, conn: sqlite3.Connection, name: str) -> bool:
        row = conn.execute(
            "SELECT COUNT(*) as c FROM sqlite_master WHERE type = 'table' AND name = ?",
            (name,),
        ).fetchone()
        return row["c"] > 0

    def _get_index_meta(self, conn: sqlite3.Connection, key: str) -> Optional[str]:
        row = conn.execute(
            "SELECT value FROM index_meta WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def _set_index_meta(self, conn: sqlite3.Connection, key: str, value: str):
        conn.execute(
            """
            INSERT INTO index_meta (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )

    def _seed_config(self, conn: sqlite3.Connection):
        now = utc_now_iso()
        conn.executemany(
            "INSERT OR IGNORE INTO server_config (key, value, updated_at) VALUES (?, ?, ?)",
            [(key, value, now) for key, value in DEFAULT_SERVER_CONFIG.items()],
        )

    def _read_config(self, conn: sqlite3.Connection, key: str) -> Optional[str]:
        row = conn.execute(
            "SELECT value FROM server_config WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    # -- plumbing --

    def _conn(self) -> sqlite3.Connection:
        if not self._initialized or self._connection is None:
            raise StoreNotInitializedError("SessionDatabase.initialize() has not been called")
        return self._connection

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._conn()
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _index_where(self, conn: sqlite3.Connection, where: str, params: tuple):
        if not self._fts_available:
            return
        conn.execute(
            f"""
            INSERT INTO sessions_fts(rowid, id, title, original_content, tags)
            SELECT rowid, id, title, original_content, tags FROM sessions
            WHERE {where}
            """,
            params,
        )

    def _unindex_where(self, conn: sqlite3.Connection, where: str, params: tuple):
        if not self._fts_available:
            return
        conn.execute(
            f"DELETE FROM sessions_fts WHERE rowid IN (SELECT rowid FROM sessions WHERE {where})",
            params,
        )

    def fetch_rows(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        """Run a read query against the store's connection."""
        with self._lock:
            return self._conn().execute(sql, tuple(params)).fetchall()

    def _generate_id(self) -> str:
        return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"

    # -- writes --

    def create_session(
        self,
        *,
        agent_id: str,
        agent_type: str,
        original_content: str,
        title: Optional[str] = None,
        project_context: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> str:
        """Persist a new session and return its id."""
        session_id = self._generate_id()
        now = utc_now_iso()
        if not title:
            title = f"Chat Session - {now[:10]}"
        tags_json = json.dumps(list(tags or []), ensure_ascii=False)

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO sessions (
                    id, title, agent_id, agent_type, project_context,
                    original_content, tags, created_at, updated_at, session_hash
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session_id,
                    title,
                    agent_id,
                    agent_type,
                    project_context,
                    original_content,
                    tags_json,
                    now,
                    now,
                    compute_content_hash(original_content),
                ),
            )
            self._index_where(conn, "id = ?", (session_id,))

        self._log_event(session_id, "created", {"agent_type": agent_type})
        logger.info(f"Created session {session_id} ({len(original_content)} chars)")
        return session_id

    def update_session(self, session_id: str, updates: dict) -> bool:
        """Apply a partial update. `tags` replaces the stored array wholesale.

        Returns False if the session does not exist.
        """
        assignments = []
        params: list = []
        for key in UPDATABLE_FIELDS:
            if key not in updates:
                continue
            value = updates[key]
            if key == "tags":
                if isinstance(value, str):
                    raise TypeError("tags must be a sequence of strings")
                value = json.dumps(list(value or []), ensure_ascii=False)
            assignments.append(f"{key} = ?")
            params.append(value)
            if key == "original_content":
                assignments.append("session_hash = ?")
                params.append(compute_content_hash(value))

        assignments.append("updated_at = ?")
        params.append(utc_now_iso())
        params.append(session_id)

        with self._transaction() as conn:
            self._unindex_where(conn, "id = ?", (session_id,))
            cursor = conn.execute(
                f"UPDATE sessions SET {', '.join(assignments)} WHERE id = ?",
                params,
            )
            updated = cursor.rowcount > 0
            if updated:
                self._index_where(conn, "id = ?", (session_id,))

        if updated:
            self._log_event(session_id, "updated", {"fields": [k for k in UPDATABLE_FIELDS if k in updates]})
        return updated

    def _delete_rows(self, conn: sqlite3.Connection, where: str, params: tuple) -> int:
        self._unindex_where(conn, where, params)
        cursor = conn.execute(f"DELETE FROM sessions WHERE {where}", params)
        return cursor.rowcount

    def _delete_where(self, where: str, params: tuple) -> int:
        with self._transaction() as conn:
            return self._delete_rows(conn, where, params)

    def delete_session(self, session_id: str) -> bool:
        deleted = self._delete_where("id = ?", (session_id,)) > 0
        if deleted:
            self._log_event(session_id, "deleted")
        return deleted

    def delete_sessions(self, session_ids: Iterable[str]) -> int:
        ids = list(dict.fromkeys(session_ids))
        if not ids:
            return 0
        deleted = 0
        with self._transaction() as conn:
            for start in range(0, len(ids), _DELETE_BATCH_SIZE):
                batch = tuple(ids[start:start + _DELETE_BATCH_SIZE])
                placeholders = ", ".join("?" for _ in batch)
                deleted += self._delete_rows(conn, f"id IN ({placeholders})", batch)
        logger.info(f"Deleted {deleted} of {len(ids)} requested sessions")
        return deleted

    def delete_older_than(
        self,
        days: float,
        agent_type: Optional[str] = None,
        project_context: Optional[str] = None,
    ) -> int:
        """Delete sessions created more than `days` days ago."""
        cutoff = to_iso(datetime.now(timezone.utc) - timedelta(days=days))
        conditions = ["created_at < ?"]
        params: list = [cutoff]
        if agent_type:
            conditions.append("agent_type = ?")
            params.append(agent_type)
        if project_context:
            conditions.append("project_context = ?")
            params.append(project_context)

        deleted = self._delete_where(" AND ".join(conditions), tuple(params))
        logger.info(f"Deleted {deleted} sessions older than {days} days (before {cutoff})")
        return deleted

    def delete_by_agent(self, agent_id: str) -> int:
        deleted = self._delete_where("agent_id = ?", (agent_id,))
        logger.info(f"Deleted {deleted} sessions for agent {agent_id}")
        return deleted

    def delete_by_project(self, project_context: str) -> int:
        deleted = self._delete_where("project_context = ?", (project_context,))
        logger.info(f"Deleted {deleted} sessions for project {project_context}")
        return deleted

    def delete_all(self) -> int:
        deleted = self._delete_where("1 = 1", ())
        logger.info(f"Deleted all {deleted} sessions")
        return deleted

    # -- reads --

    def get_session(self, session_id: str) -> Optional[Session]:
        rows = self.fetch_rows("SELECT * FROM sessions WHERE id = ?", (session_id,))
        if not rows:
            return None
        self._log_event(session_id, "accessed")
        return self.row_to_session(rows[0])

    def list_recent(
        self,
        limit: int = 10,
        agent_type: Optional[str] = None,
        project_context: Optional[str] = None,
    ) -> list[Session]:
        sql = "SELECT * FROM sessions WHERE 1 = 1"
        params: list = []
        if agent_type:
            sql += " AND agent_type = ?"
            params.append(agent_type)
        if project_context:
            sql += " AND project_context = ?"
            params.append(project_context)
        sql += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)
        return [self.row_to_session(r) for r in self.fetch_rows(sql, params)]

    def list_by_agent(self, agent_id: str, limit: int = 20) -> list[Session]:
        rows = self.fetch_rows(
            """
            SELECT * FROM sessions
            WHERE agent_id = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT ?
            """,
            (agent_id, limit),
        )
        return [self.row_to_session(r) for r in rows]

    def find_by_hash(self, session_hash: str) -> list[Session]:
        """Sessions whose content digest matches; used for duplicate warnings."""
        rows = self.fetch_rows(
            "SELECT * FROM sessions WHERE session_hash = ? ORDER BY created_at DESC, rowid DESC",
            (session_hash,),
        )
        return [self.row_to_session(r) for r in rows]

    def count_sessions(self, agent_type: Optional[str] = None) -> int:
        if agent_type:
            rows = self.fetch_rows(
                "SELECT COUNT(*) as c FROM sessions WHERE agent_type = ?", (agent_type,)
            )
        else:
            rows = self.fetch_rows("SELECT COUNT(*) as c FROM sessions")
        return rows[0]["c"] if rows else 0

    def count_indexed(self) -> int:
        """Number of entries in the text-search index (0 in fallback mode)."""
        if not self._fts_available:
            return 0
        rows = self.fetch_rows("SELECT COUNT(*) as c FROM sessions_fts")
        return rows[0]["c"] if rows else 0

    def stats(self) -> SessionStats:
        total = self.count_sessions()

        by_agent = {
            row["agent_type"]: row["c"]
            for row in self.fetch_rows(
                "SELECT agent_type, COUNT(*) as c FROM sessions GROUP BY agent_type"
            )
        }
        by_project = {
            row["project"]: row["c"]
            for row in self.fetch_rows(
                """
                SELECT COALESCE(project_context, 'unknown') as project, COUNT(*) as c
                FROM sessions
                GROUP BY project
                """
            )
        }
        most_common_tags = [
            (row["tag"], row["c"])
            for row in self.fetch_rows(
                """
                SELECT j.value as tag, COUNT(*) as c
                FROM sessions, json_each(sessions.tags) j
                GROUP BY j.value
                ORDER BY c DESC, tag
                LIMIT 10
                """
            )
        ]
        week_ago = to_iso(datetime.now(timezone.utc) - timedelta(days=7))
        recent_activity = [
            (row["day"], row["c"])
            for row in self.fetch_rows(
                """
                SELECT substr(created_at, 1, 10) as day, COUNT(*) as c
                FROM sessions
                WHERE created_at >= ?
                GROUP BY day
                ORDER BY day DESC
                """,
                (week_ago,),
            )
        ]

        return SessionStats(
            total_sessions=total,
            sessions_by_agent=by_agent,
            sessions_by_project=by_project,
            most_common_tags=most_common_tags,
            recent_activity=recent_activity,
        )

    # -- configuration and analytics --

    def get_config(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_config(self._conn(), key)

    def set_config(self, key: str, value: str):
        with self._lock:
            self._conn().execute(
                """
                INSERT INTO server_config (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, utc_now_iso()),
            )
            if key == "enable_analytics":
                self._analytics_enabled = value == "true"

    @property
    def max_search_results(self) -> int:
        value = self.get_config("max_search_results")
        try:
            configured = int(value) if value else HARD_MAX_SEARCH_RESULTS
        except ValueError:
            logger.warning(f"Ignoring non-numeric max_search_results: {value!r}")
            configured = HARD_MAX_SEARCH_RESULTS
        return max(1, min(configured, HARD_MAX_SEARCH_RESULTS))

    def _log_event(self, session_id: str, event_type: str, event_data: Optional[dict] = None):
        if not self._analytics_enabled:
            return
        try:
            with self._lock:
                self._conn().execute(
                    """
                    INSERT INTO session_analytics (session_id, event_type, event_data, timestamp)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        session_id,
                        event_type,
                        json.dumps(event_data) if event_data else None,
                        utc_now_iso(),
                    ),
                )
        except sqlite3.Error as e:
            logger.warning(f"Failed to log analytics event {event_type} for {session_id}: {e}")

    def count_events(self, event_type: str, session_id: Optional[str] = None) -> int:
        sql = "SELECT COUNT(*) as c FROM session_analytics WHERE event_type = ?"
        params: list = [event_type]
        if session_id:
            sql += " AND session_id = ?"
            params.append(session_id)
        rows = self.fetch_rows(sql, params)
        return rows[0]["c"] if rows else 0

    def log_search(
        self,
        query: Optional[str],
        result_count: int,
        top_session_ids: list[str],
        search_time_ms: int,
    ):
        if not self._analytics_enabled:
            return
        try:
            with self._lock:
                self._conn().execute(
                    """
                    INSERT INTO searches (query, capability, result_count, top_session_ids, search_time_ms)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (query, self.capability, result_count, json.dumps(top_session_ids), search_time_ms),
                )
        except sqlite3.Error as e:
            logger.warning(f"Failed to log search {query!r}: {e}")

    def recent_searches(self, limit: int = 20) -> list[sqlite3.Row]:
        return self.fetch_rows(
            """
            SELECT query, capability, result_count, search_time_ms, timestamp
            FROM searches
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        )

    # -- row mapping --

    def row_to_session(self, row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            title=row["title"],
            agent_id=row["agent_id"],
            agent_type=row["agent_type"],
            original_content=row["original_content"],
            project_context=row["project_context"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            session_hash=row["session_hash"],
        )


def reset_database(db_path: Optional[Union[str, Path]] = None, *, use_fts: Optional[bool] = None) -> SessionDatabase:
    """Remove the database files and return a freshly initialized store."""
    path = Path(db_path) if db_path else DEFAULT_DB_PATH
    for candidate in (path, Path(f"{path}-wal"), Path(f"{path}-shm")):
        if candidate.exists():
            candidate.unlink()
            logger.info(f"Removed {candidate}")
    db = SessionDatabase(path, use_fts=use_fts)
    db.initialize()
    return db
