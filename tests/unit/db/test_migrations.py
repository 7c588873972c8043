"""Tests for the forward-only migration runner."""

from __future__ import annotations

import pytest

import vectorbase.db.migrations as mod
from vectorbase.db.connection import Database
from vectorbase.db.migrations import MIGRATIONS, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    db = Database(tmp_path / "test.db")
    return db.connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0]
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


@pytest.mark.parametrize(
    "table",
    [
        "sources",
        "source_texts",
        "source_qas",
        "source_websites",
        "source_documents",
        "source_notions",
        "website_links",
        "notion_pages",
        "chunks",
    ],
)
def test_run_migrations_creates_tables(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, table)
    conn.close()


def test_run_migrations_does_not_create_vec_tables(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    vec_tables = conn.execute(
        "SELECT name FROM sqlite_master WHERE name LIKE 'vec_chunks_%'"
    ).fetchall()
    assert vec_tables == []
    conn.close()


def test_run_migrations_applies_only_pending(tmp_path, monkeypatch):
    """A DB already at version 1 only gets the v2 migration."""
    conn = _fresh_conn(tmp_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL, "
        "applied_at DATETIME NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    monkeypatch.setattr(
        mod,
        "MIGRATIONS",
        [(1, "CREATE TABLE v1_marker (x INTEGER);"), (2, "CREATE TABLE v2_marker (x INTEGER);")],
    )
    mod.run_migrations(conn)

    assert _table_exists(conn, "v2_marker")
    assert not _table_exists(conn, "v1_marker")
    versions = [r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version")]
    assert versions == [1, 2]
    conn.close()
