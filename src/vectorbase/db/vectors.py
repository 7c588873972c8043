"""Per-model sqlite-vec virtual table management.

Each embedding model gets its own ``vec0`` table so vectors of different
dimensions never share an index. Tables use the cosine distance metric;
similarity is reported as ``1 - distance``.
"""

from __future__ import annotations

import re
import sqlite3


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
        "text-embedding-3-small"        -> "text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def vec_table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


def list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the names of every per-model vec table in the database."""
    return [
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name LIKE 'vec_chunks_%' "
            "AND sql LIKE 'CREATE VIRTUAL TABLE%'"
        ).fetchall()
    ]


def ensure_vec_table(conn: sqlite3.Connection, model: str, dimensions: int) -> str:
    """Create the vec table for *model* if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model: Embedding model identifier, as recorded on each chunk.
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_chunks_{model_slug}).
    """
    slug = model_to_slug(model)
    if not re.fullmatch(r"[a-z0-9_]+", slug):
        raise ValueError(f"Invalid model slug '{slug}' for model '{model}'.")
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(slug)
    if not vec_table_exists(conn, table):
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0("
            f"embedding float[{dimensions}] distance_metric=cosine)"
        )
        conn.commit()

    return table
