"""Database schema initialization."""

from __future__ import annotations

import sqlite3

from vectorbase.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(conn: sqlite3.Connection) -> None:
    """Bring the schema up to CURRENT_VERSION (idempotent)."""
    run_migrations(conn)


def schema_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 for a fresh file)."""
    try:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    except sqlite3.OperationalError:
        return 0
    return row[0] if row and row[0] is not None else 0
