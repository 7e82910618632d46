"""Shared fixtures for store and search tests."""

import pytest

from chat_context.index import SessionDatabase


@pytest.fixture(params=[True, False], ids=["indexed", "fallback"])
def db(request, tmp_path):
    """An initialized store in each capability mode."""
    store = SessionDatabase(tmp_path / "sessions.db", use_fts=request.param)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def indexed_db(tmp_path):
    store = SessionDatabase(tmp_path / "sessions.db", use_fts=True)
    store.initialize()
    if not store.fts_available:
        store.close()
        pytest.skip("SQLite build lacks FTS5")
    yield store
    store.close()


@pytest.fixture
def fallback_db(tmp_path):
    store = SessionDatabase(tmp_path / "sessions.db", use_fts=False)
    store.initialize()
    yield store
    store.close()


def _backdate(store: SessionDatabase, session_id: str, created_at: str):
    """Rewrite a session's created_at directly in the table."""
    store._get_connection().execute(
        "UPDATE sessions SET created_at = ? WHERE id = ?", (created_at, session_id)
    )


@pytest.fixture(name="backdate")
def backdate_fixture():
    return _backdate
