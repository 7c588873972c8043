"""Vector retriever: cosine nearest-neighbour search over stored chunks.

similarity(q, c) = 1 - cosine_distance(q, c.embedding)

Results are scoped to one project, filtered by a similarity threshold, and
returned best-first. Chunks without a vector row never match. Read-only.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field

from vectorbase.db.repository import Repository
from vectorbase.db.vectors import model_to_slug, vec_table_name, vec_table_exists
from vectorbase.ingest.embeddings import Embedder

DEFAULT_THRESHOLD = 0.5
DEFAULT_TOP_K = 5
MAX_TOP_K = 20


@dataclass
class RetrievalResult:
    """One retrieved chunk.

    Attributes:
        id: Chunk identifier.
        content: Chunk text.
        metadata: Decoded chunk metadata (source name/type, offsets, URL, ...).
        similarity: 1 - cosine distance to the query vector.
        source_id: Owning source.
    """

    id: str
    content: str
    similarity: float
    source_id: str
    metadata: dict = field(default_factory=dict)


def retrieve(
    repo: Repository,
    query_embedding: list[float],
    project_id: str,
    embedding_model: str,
    threshold: float = DEFAULT_THRESHOLD,
    limit: int = DEFAULT_TOP_K,
) -> list[RetrievalResult]:
    """Return up to *limit* chunks with similarity >= *threshold*, best-first.

    An empty list is returned when nothing has been embedded with
    *embedding_model* yet.
    """
    if limit < 1:
        return []
    vec_table = vec_table_name(model_to_slug(embedding_model))
    if not vec_table_exists(repo.conn, vec_table):
        return []
    _check_dimensions(repo.conn, vec_table, query_embedding)

    rows = repo.search_vec(vec_table, query_embedding, project_id, threshold, limit)
    return [
        RetrievalResult(
            id=chunk.id,
            content=chunk.content,
            similarity=similarity,
            source_id=chunk.source_id,
            metadata=chunk.metadata_dict,
        )
        for chunk, similarity in rows
    ]


def search(
    query: str,
    repo: Repository,
    embedder: Embedder,
    project_id: str,
    threshold: float = DEFAULT_THRESHOLD,
    top_k: int = DEFAULT_TOP_K,
    max_top_k: int = MAX_TOP_K,
) -> list[RetrievalResult]:
    """Embed *query* and run ``retrieve()``; *top_k* is clamped to *max_top_k*."""
    if not query.strip():
        raise ValueError("Query must not be empty.")
    limit = max(1, min(top_k, max_top_k))
    query_embedding = embedder.embed([query])[0]
    return retrieve(
        repo,
        query_embedding,
        project_id,
        embedder.model,
        threshold=threshold,
        limit=limit,
    )


# ------------------------------------------------------------------
# Validation
# ------------------------------------------------------------------


def _check_dimensions(
    conn: sqlite3.Connection, vec_table: str, query_embedding: list[float]
) -> None:
    """Raise ValueError if the query vector length differs from the index's."""
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (vec_table,)
    ).fetchone()
    # e.g. "... vec0(embedding float[1536] distance_metric=cosine)"
    sql = row[0] if row else ""
    start = sql.find("float[")
    if start == -1:
        return
    dims = int(sql[start + len("float[") : sql.index("]", start)])
    if len(query_embedding) != dims:
        raise ValueError(
            f"Query vector has {len(query_embedding)} dimensions; index '{vec_table}' "
            f"expects {dims}."
        )
