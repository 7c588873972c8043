"""Connections to a project's knowledge base file.

Every connection loads sqlite-vec, since chunk vectors live in per-model
``vec0`` tables, and enforces foreign keys so deleting a source cascades
to its links, pages and chunks.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

from vectorbase.db.schema import initialize

DEFAULT_DB_NAME = ".vectorbase.db"


class Database:
    """A knowledge base file: sources, chunks and their embeddings.

    Usable directly (``Database(path).connect()``) or as a context manager
    that closes the connection on exit.
    """

    def __init__(self, db_path: Path | str, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None

    @property
    def exists(self) -> bool:
        return self.db_path.exists()

    def connect(self, migrate: bool = False) -> sqlite3.Connection:
        """Open a connection with sqlite-vec loaded.

        Args:
            migrate: Bring the schema up to date before returning. The file is
                created if it does not exist yet.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.enable_load_extension(True)
        sqlite_vec.load(conn)
        conn.enable_load_extension(False)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
        if migrate:
            initialize(conn)
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *args: object) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
