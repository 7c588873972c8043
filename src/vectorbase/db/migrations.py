"""Forward-only migration runner for the VectorBase schema.

Vec tables (vec_chunks_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS sources (
    id                  TEXT PRIMARY KEY,
    project_id          TEXT NOT NULL,
    type                TEXT NOT NULL
                        CHECK (type IN ('text', 'qa', 'website', 'document', 'notion')),
    name                TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'pending'
                        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    error_message       TEXT,
    chunks_count        INTEGER NOT NULL DEFAULT 0,
    tokens_count        INTEGER NOT NULL DEFAULT 0,
    auto_retrain        INTEGER NOT NULL DEFAULT 0,
    last_retrained_at   DATETIME,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    updated_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_sources_project ON sources(project_id);

CREATE TABLE IF NOT EXISTS source_texts (
    source_id   TEXT PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
    content     TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS source_qas (
    source_id   TEXT PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
    question    TEXT NOT NULL,
    answer      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS source_websites (
    source_id       TEXT PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
    url             TEXT NOT NULL,
    crawl_type      TEXT NOT NULL DEFAULT 'crawl'
                    CHECK (crawl_type IN ('single', 'sitemap', 'crawl')),
    sitemap_url     TEXT,
    include_paths   TEXT NOT NULL DEFAULT '[]',
    exclude_paths   TEXT NOT NULL DEFAULT '[]',
    pages_crawled   INTEGER NOT NULL DEFAULT 0,
    last_crawled_at DATETIME
);

CREATE TABLE IF NOT EXISTS source_documents (
    source_id       TEXT PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
    file_name       TEXT NOT NULL,
    file_type       TEXT NOT NULL,
    storage_path    TEXT NOT NULL,
    file_size       INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS source_notions (
    source_id               TEXT PRIMARY KEY REFERENCES sources(id) ON DELETE CASCADE,
    access_token_encrypted  TEXT,
    workspace_id            TEXT,
    workspace_name          TEXT,
    sync_status             TEXT NOT NULL DEFAULT 'pending',
    last_synced_at          DATETIME
);

CREATE TABLE IF NOT EXISTS website_links (
    id              TEXT PRIMARY KEY,
    source_id       TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    url             TEXT NOT NULL,
    title           TEXT,
    content_size    INTEGER NOT NULL DEFAULT 0,
    status          TEXT NOT NULL DEFAULT 'pending',
    is_excluded     INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    last_crawled_at DATETIME,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (source_id, url)
);

CREATE TABLE IF NOT EXISTS notion_pages (
    id              TEXT PRIMARY KEY,
    source_id       TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    notion_page_id  TEXT NOT NULL,
    title           TEXT,
    page_type       TEXT NOT NULL DEFAULT 'page' CHECK (page_type IN ('page', 'database')),
    status          TEXT NOT NULL DEFAULT 'pending',
    is_excluded     INTEGER NOT NULL DEFAULT 0,
    content_size    INTEGER NOT NULL DEFAULT 0,
    error_message   TEXT,
    last_synced_at  DATETIME,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (source_id, notion_page_id)
);

CREATE TABLE IF NOT EXISTS chunks (
    id              TEXT NOT NULL UNIQUE,
    source_id       TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    project_id      TEXT NOT NULL,
    chunk_index     INTEGER NOT NULL,
    content         TEXT NOT NULL,
    metadata        TEXT NOT NULL DEFAULT '{}',
    embedding_model TEXT NOT NULL,
    tokens_count    INTEGER NOT NULL DEFAULT 0,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_chunks_source ON chunks(source_id);
CREATE INDEX IF NOT EXISTS idx_chunks_project ON chunks(project_id);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
