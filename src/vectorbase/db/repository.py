"""Repository pattern for all VectorBase database operations.

Single interface for: sources (+ their payload variant), website links,
Notion pages, chunks, and vec embeddings. Vec tables are model-managed
(ensure_vec_table); the repository handles read + write.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterable

from vectorbase.db.models import (
    Chunk,
    DocumentPayload,
    NotionPage,
    NotionPayload,
    QaPayload,
    Source,
    SourcePayload,
    TextPayload,
    WebsiteLink,
    WebsitePayload,
    payload_type,
)
from vectorbase.db.vectors import list_vec_tables

_SOURCE_COLS = (
    "id, project_id, type, name, status, error_message, chunks_count, tokens_count, "
    "auto_retrain, last_retrained_at, created_at, updated_at"
)
_LINK_COLS = (
    "id, source_id, url, title, content_size, status, is_excluded, error_message, last_crawled_at"
)
_PAGE_COLS = (
    "id, source_id, notion_page_id, title, page_type, status, is_excluded, content_size, "
    "error_message, last_synced_at"
)
_CHUNK_COLS = (
    "rowid, id, source_id, project_id, chunk_index, content, metadata, embedding_model, "
    "tokens_count, created_at"
)


class Repository:
    """Data access layer for all VectorBase database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see vectorbase.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_source(self, source: Source) -> None:
        """Insert a source and its payload row in one transaction."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO sources (id, project_id, type, name, status, auto_retrain)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    source.id,
                    source.project_id,
                    source.type,
                    source.name,
                    source.status,
                    int(source.auto_retrain),
                ),
            )
            self._insert_payload(source.id, source.payload)

    def _insert_payload(self, source_id: str, payload: SourcePayload) -> None:
        if isinstance(payload, TextPayload):
            self._conn.execute(
                "INSERT INTO source_texts (source_id, content) VALUES (?, ?)",
                (source_id, payload.content),
            )
        elif isinstance(payload, QaPayload):
            self._conn.execute(
                "INSERT INTO source_qas (source_id, question, answer) VALUES (?, ?, ?)",
                (source_id, payload.question, payload.answer),
            )
        elif isinstance(payload, WebsitePayload):
            self._conn.execute(
                """
                INSERT INTO source_websites
                    (source_id, url, crawl_type, sitemap_url, include_paths, exclude_paths)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    source_id,
                    payload.url,
                    payload.crawl_type,
                    payload.sitemap_url,
                    json.dumps(payload.include_paths),
                    json.dumps(payload.exclude_paths),
                ),
            )
        elif isinstance(payload, DocumentPayload):
            self._conn.execute(
                """
                INSERT INTO source_documents (source_id, file_name, file_type, storage_path, file_size)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    source_id,
                    payload.file_name,
                    payload.file_type,
                    payload.storage_path,
                    payload.file_size,
                ),
            )
        elif isinstance(payload, NotionPayload):
            self._conn.execute(
                """
                INSERT INTO source_notions
                    (source_id, access_token_encrypted, workspace_id, workspace_name)
                VALUES (?, ?, ?, ?)
                """,
                (
                    source_id,
                    payload.access_token_encrypted,
                    payload.workspace_id,
                    payload.workspace_name,
                ),
            )
        else:
            raise TypeError(f"Unknown source payload: {type(payload).__name__}")

    def get_source(self, source_id: str) -> Source | None:
        """Return a source (with its payload loaded) by ID, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_SOURCE_COLS} FROM sources WHERE id = ?", (source_id,)
        ).fetchone()
        if row is None:
            return None
        return _row_to_source(row, self._load_payload(row["id"], row["type"]))

    def list_sources(self, project_id: str | None = None) -> list[Source]:
        """Return sources (optionally for one project) ordered by creation time."""
        if project_id is None:
            rows = self._conn.execute(
                f"SELECT {_SOURCE_COLS} FROM sources ORDER BY created_at, rowid"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_SOURCE_COLS} FROM sources WHERE project_id = ? ORDER BY created_at, rowid",
                (project_id,),
            ).fetchall()
        return [_row_to_source(r, self._load_payload(r["id"], r["type"])) for r in rows]

    def list_sources_by_status(self, status: str, limit: int | None = None) -> list[Source]:
        """Return sources in *status*, oldest first, at most *limit* of them."""
        sql = f"SELECT {_SOURCE_COLS} FROM sources WHERE status = ? ORDER BY created_at, rowid"
        params: tuple = (status,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (status, limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_source(r, self._load_payload(r["id"], r["type"])) for r in rows]

    def update_source(
        self,
        source_id: str,
        *,
        name: str | None = None,
        auto_retrain: bool | None = None,
        payload: SourcePayload | None = None,
    ) -> bool:
        """Apply owner edits to a source: display name, auto-retrain flag, payload.

        Text content, the Q&A pair and website crawl settings are editable.
        Status, counts and chunks are untouched; a retrain picks up the new payload.

        Returns:
            False if the source does not exist.

        Raises:
            ValueError: *payload* does not match the source's type, or that
                type has no editable payload.
        """
        row = self._one("SELECT type FROM sources WHERE id = ?", source_id)
        if row is None:
            return False
        fields = ["updated_at = datetime('now')"]
        params: list[object] = []
        if name is not None:
            fields.append("name = ?")
            params.append(name)
        if auto_retrain is not None:
            fields.append("auto_retrain = ?")
            params.append(int(auto_retrain))
        with self._conn:
            if payload is not None:
                if payload_type(payload) != row["type"]:
                    raise ValueError(
                        f"Cannot apply a {payload_type(payload)} payload to a {row['type']} source"
                    )
                self._update_payload(source_id, payload)
            self._conn.execute(
                f"UPDATE sources SET {', '.join(fields)} WHERE id = ?",  # noqa: S608
                (*params, source_id),
            )
        return True

    def _update_payload(self, source_id: str, payload: SourcePayload) -> None:
        if isinstance(payload, TextPayload):
            self._conn.execute(
                "UPDATE source_texts SET content = ? WHERE source_id = ?",
                (payload.content, source_id),
            )
        elif isinstance(payload, QaPayload):
            self._conn.execute(
                "UPDATE source_qas SET question = ?, answer = ? WHERE source_id = ?",
                (payload.question, payload.answer, source_id),
            )
        elif isinstance(payload, WebsitePayload):
            self._conn.execute(
                """
                UPDATE source_websites
                SET url = ?, crawl_type = ?, sitemap_url = ?, include_paths = ?, exclude_paths = ?
                WHERE source_id = ?
                """,
                (
                    payload.url,
                    payload.crawl_type,
                    payload.sitemap_url,
                    json.dumps(payload.include_paths),
                    json.dumps(payload.exclude_paths),
                    source_id,
                ),
            )
        else:
            raise ValueError(f"{payload_type(payload)} sources have no editable payload")

    def _load_payload(self, source_id: str, source_type: str) -> SourcePayload:
        if source_type == "text":
            r = self._one("SELECT content FROM source_texts WHERE source_id = ?", source_id)
            return TextPayload(content=r["content"] if r else "")
        if source_type == "qa":
            r = self._one("SELECT question, answer FROM source_qas WHERE source_id = ?", source_id)
            return QaPayload(question=r["question"] if r else "", answer=r["answer"] if r else "")
        if source_type == "website":
            r = self._one(
                """
                SELECT url, crawl_type, sitemap_url, include_paths, exclude_paths,
                       pages_crawled, last_crawled_at
                FROM source_websites WHERE source_id = ?
                """,
                source_id,
            )
            if r is None:
                return WebsitePayload(url="")
            return WebsitePayload(
                url=r["url"],
                crawl_type=r["crawl_type"],
                sitemap_url=r["sitemap_url"],
                include_paths=json.loads(r["include_paths"]),
                exclude_paths=json.loads(r["exclude_paths"]),
                pages_crawled=r["pages_crawled"],
                last_crawled_at=r["last_crawled_at"],
            )
        if source_type == "document":
            r = self._one(
                """
                SELECT file_name, file_type, storage_path, file_size
                FROM source_documents WHERE source_id = ?
                """,
                source_id,
            )
            if r is None:
                return DocumentPayload(file_name="", file_type="", storage_path="")
            return DocumentPayload(
                file_name=r["file_name"],
                file_type=r["file_type"],
                storage_path=r["storage_path"],
                file_size=r["file_size"],
            )
        if source_type == "notion":
            r = self._one(
                """
                SELECT access_token_encrypted, workspace_id, workspace_name,
                       sync_status, last_synced_at
                FROM source_notions WHERE source_id = ?
                """,
                source_id,
            )
            if r is None:
                return NotionPayload(access_token_encrypted=None)
            return NotionPayload(
                access_token_encrypted=r["access_token_encrypted"],
                workspace_id=r["workspace_id"],
                workspace_name=r["workspace_name"],
                sync_status=r["sync_status"],
                last_synced_at=r["last_synced_at"],
            )
        raise ValueError(f"Unsupported source type: {source_type!r}")

    def delete_source(self, source_id: str) -> None:
        """Delete a source, its vectors, and (via cascade) payload, links, pages and chunks."""
        self.delete_chunks_by_source(source_id)
        self._conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
        self._conn.commit()

    # ------------------------------------------------------------------
    # Source state transitions
    # ------------------------------------------------------------------

    def claim_for_processing(self, source_id: str) -> bool:
        """Atomically move a source into ``processing``.

        Returns False (and changes nothing) when the source is missing or is
        already being processed.
        """
        cur = self._conn.execute(
            """
            UPDATE sources SET status = 'processing', updated_at = datetime('now')
            WHERE id = ? AND status != 'processing'
            """,
            (source_id,),
        )
        self._conn.commit()
        return cur.rowcount == 1

    def mark_source_completed(self, source_id: str) -> tuple[int, int]:
        """Set ``completed`` with counts recomputed from live chunk rows.

        Returns:
            (chunks_count, tokens_count) as persisted.
        """
        chunks_count, tokens_count = self.chunk_totals(source_id)
        self._conn.execute(
            """
            UPDATE sources
            SET status = 'completed', chunks_count = ?, tokens_count = ?,
                error_message = NULL, updated_at = datetime('now')
            WHERE id = ?
            """,
            (chunks_count, tokens_count, source_id),
        )
        self._conn.commit()
        return chunks_count, tokens_count

    def mark_source_failed(self, source_id: str, error_message: str) -> None:
        """Set ``failed`` with *error_message*; counts follow the (now empty) chunk set."""
        chunks_count, tokens_count = self.chunk_totals(source_id)
        self._conn.execute(
            """
            UPDATE sources
            SET status = 'failed', error_message = ?, chunks_count = ?, tokens_count = ?,
                updated_at = datetime('now')
            WHERE id = ?
            """,
            (error_message, chunks_count, tokens_count, source_id),
        )
        self._conn.commit()

    def reset_source(self, source_id: str) -> None:
        """Return a source to ``pending`` with zeroed counts and no error."""
        self._conn.execute(
            """
            UPDATE sources
            SET status = 'pending', error_message = NULL, chunks_count = 0, tokens_count = 0,
                updated_at = datetime('now')
            WHERE id = ?
            """,
            (source_id,),
        )
        self._conn.commit()

    def refresh_source_counts(self, source_id: str) -> tuple[int, int]:
        """Recompute chunks_count / tokens_count without touching status."""
        chunks_count, tokens_count = self.chunk_totals(source_id)
        self._conn.execute(
            """
            UPDATE sources SET chunks_count = ?, tokens_count = ?, updated_at = datetime('now')
            WHERE id = ?
            """,
            (chunks_count, tokens_count, source_id),
        )
        self._conn.commit()
        return chunks_count, tokens_count

    def mark_source_retrained(self, source_id: str) -> None:
        self._conn.execute(
            "UPDATE sources SET last_retrained_at = datetime('now') WHERE id = ?", (source_id,)
        )
        self._conn.commit()

    def list_auto_retrain_candidates(self, cutoff: str, limit: int = 50) -> list[Source]:
        """Completed website/Notion sources with auto-retrain on, not retrained since *cutoff*.

        Args:
            cutoff: ``YYYY-MM-DD HH:MM:SS`` UTC timestamp (SQLite datetime format).
            limit: Maximum number of sources returned.
        """
        rows = self._conn.execute(
            f"""
            SELECT {_SOURCE_COLS} FROM sources
            WHERE auto_retrain = 1
              AND status = 'completed'
              AND type IN ('website', 'notion')
              AND (last_retrained_at IS NULL OR last_retrained_at < ?)
            ORDER BY last_retrained_at IS NOT NULL, last_retrained_at, created_at
            LIMIT ?
            """,
            (cutoff, limit),
        ).fetchall()
        return [_row_to_source(r, self._load_payload(r["id"], r["type"])) for r in rows]

    def update_website_crawl_stats(self, source_id: str, pages_crawled: int) -> None:
        self._conn.execute(
            """
            UPDATE source_websites SET pages_crawled = ?, last_crawled_at = datetime('now')
            WHERE source_id = ?
            """,
            (pages_crawled, source_id),
        )
        self._conn.commit()

    def update_notion_sync(self, source_id: str, sync_status: str) -> None:
        self._conn.execute(
            """
            UPDATE source_notions SET sync_status = ?, last_synced_at = datetime('now')
            WHERE source_id = ?
            """,
            (sync_status, source_id),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Website links
    # ------------------------------------------------------------------

    def add_website_links(self, source_id: str, urls: Iterable[str]) -> int:
        """Insert one pending link per URL; URLs already attached are skipped.

        Returns:
            Number of links actually inserted.
        """
        inserted = 0
        with self._conn:
            for url in urls:
                cur = self._conn.execute(
                    "INSERT OR IGNORE INTO website_links (id, source_id, url) VALUES (?, ?, ?)",
                    (str(uuid.uuid4()), source_id, url),
                )
                inserted += cur.rowcount
        return inserted

    def list_website_links(self, source_id: str, include_excluded: bool = True) -> list[WebsiteLink]:
        sql = f"SELECT {_LINK_COLS} FROM website_links WHERE source_id = ?"
        if not include_excluded:
            sql += " AND is_excluded = 0"
        sql += " ORDER BY created_at, rowid"
        return [_row_to_link(r) for r in self._conn.execute(sql, (source_id,)).fetchall()]

    def get_website_link(self, link_id: str) -> WebsiteLink | None:
        row = self._one(f"SELECT {_LINK_COLS} FROM website_links WHERE id = ?", link_id)
        return _row_to_link(row) if row else None

    def update_website_link(self, link_id: str, url: str) -> bool:
        """Point a link at *url*: it returns to ``pending`` and its chunks are dropped.

        Returns:
            False if the link does not exist.

        Raises:
            sqlite3.IntegrityError: the source already has a link for *url*.
        """
        link = self.get_website_link(link_id)
        if link is None:
            return False
        with self._conn:
            self._conn.execute(
                """
                UPDATE website_links
                SET url = ?, status = 'pending', title = NULL, content_size = 0,
                    error_message = NULL, last_crawled_at = NULL
                WHERE id = ?
                """,
                (url, link_id),
            )
        self.delete_chunks_by_link(link.source_id, link_id)
        return True

    def delete_website_link(self, link_id: str) -> bool:
        """Remove a link and the chunks written for it. Returns False if it was not there."""
        link = self.get_website_link(link_id)
        if link is None:
            return False
        self.delete_chunks_by_link(link.source_id, link_id)
        self._conn.execute("DELETE FROM website_links WHERE id = ?", (link_id,))
        self._conn.commit()
        return True

    def refresh_pages_crawled(self, source_id: str) -> int:
        """Recount completed, non-excluded links into ``pages_crawled``."""
        row = self._one(
            """
            SELECT COUNT(*) FROM website_links
            WHERE source_id = ? AND status = 'completed' AND is_excluded = 0
            """,
            source_id,
        )
        self._conn.execute(
            "UPDATE source_websites SET pages_crawled = ? WHERE source_id = ?",
            (row[0], source_id),
        )
        self._conn.commit()
        return row[0]

    def set_link_excluded(self, link_id: str, excluded: bool) -> None:
        self._conn.execute(
            "UPDATE website_links SET is_excluded = ? WHERE id = ?", (int(excluded), link_id)
        )
        self._conn.commit()

    def mark_link_processing(self, link_id: str) -> None:
        self._set_unit_state("website_links", link_id, "processing", error_message=None)

    def mark_link_completed(self, link_id: str, title: str, content_size: int) -> None:
        self._conn.execute(
            """
            UPDATE website_links
            SET status = 'completed', title = ?, content_size = ?, error_message = NULL,
                last_crawled_at = datetime('now')
            WHERE id = ?
            """,
            (title, content_size, link_id),
        )
        self._conn.commit()

    def mark_link_failed(self, link_id: str, error_message: str) -> None:
        self._set_unit_state("website_links", link_id, "failed", error_message=error_message)

    def reset_website_links(self, source_id: str) -> None:
        self._conn.execute(
            "UPDATE website_links SET status = 'pending', error_message = NULL WHERE source_id = ?",
            (source_id,),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Notion pages
    # ------------------------------------------------------------------

    def add_notion_pages(
        self, source_id: str, pages: Iterable[tuple[str, str | None, str]]
    ) -> int:
        """Attach Notion pages given as ``(notion_page_id, title, page_type)`` tuples.

        Returns:
            Number of pages actually inserted (already-attached ids are skipped).
        """
        inserted = 0
        with self._conn:
            for notion_page_id, title, page_type in pages:
                cur = self._conn.execute(
                    """
                    INSERT OR IGNORE INTO notion_pages (id, source_id, notion_page_id, title, page_type)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (str(uuid.uuid4()), source_id, notion_page_id, title, page_type),
                )
                inserted += cur.rowcount
        return inserted

    def list_notion_pages(self, source_id: str, include_excluded: bool = True) -> list[NotionPage]:
        sql = f"SELECT {_PAGE_COLS} FROM notion_pages WHERE source_id = ?"
        if not include_excluded:
            sql += " AND is_excluded = 0"
        sql += " ORDER BY created_at, rowid"
        return [_row_to_page(r) for r in self._conn.execute(sql, (source_id,)).fetchall()]

    def replace_notion_pages(
        self, source_id: str, pages: Iterable[tuple[str, str | None, str]]
    ) -> tuple[int, int]:
        """Make *pages* the source's page selection.

        Pages no longer selected are removed with their chunks; newly selected ones are added
        as ``pending``; pages kept keep their status.

        Returns:
            (added, removed)
        """
        wanted = list(pages)
        keep = {notion_page_id for notion_page_id, _, _ in wanted}
        existing = {
            r["notion_page_id"]
            for r in self._conn.execute(
                "SELECT notion_page_id FROM notion_pages WHERE source_id = ?", (source_id,)
            ).fetchall()
        }
        stale = existing - keep
        for notion_page_id in stale:
            self._delete_chunks(
                "source_id = ? AND json_extract(metadata, '$.notion_page_id') = ?",
                (source_id, notion_page_id),
            )
        with self._conn:
            for notion_page_id in stale:
                self._conn.execute(
                    "DELETE FROM notion_pages WHERE source_id = ? AND notion_page_id = ?",
                    (source_id, notion_page_id),
                )
        added = self.add_notion_pages(source_id, [p for p in wanted if p[0] not in existing])
        return added, len(stale)

    def set_page_excluded(self, page_id: str, excluded: bool) -> None:
        self._conn.execute(
            "UPDATE notion_pages SET is_excluded = ? WHERE id = ?", (int(excluded), page_id)
        )
        self._conn.commit()

    def mark_page_processing(self, page_id: str) -> None:
        self._set_unit_state("notion_pages", page_id, "processing", error_message=None)

    def mark_page_completed(self, page_id: str, title: str, content_size: int) -> None:
        self._conn.execute(
            """
            UPDATE notion_pages
            SET status = 'completed', title = ?, content_size = ?, error_message = NULL,
                last_synced_at = datetime('now')
            WHERE id = ?
            """,
            (title, content_size, page_id),
        )
        self._conn.commit()

    def mark_page_failed(self, page_id: str, error_message: str) -> None:
        self._set_unit_state("notion_pages", page_id, "failed", error_message=error_message)

    def reset_notion_pages(self, source_id: str) -> None:
        self._conn.execute(
            "UPDATE notion_pages SET status = 'pending', error_message = NULL WHERE source_id = ?",
            (source_id,),
        )
        self._conn.commit()

    def _set_unit_state(
        self, table: str, unit_id: str, status: str, error_message: str | None
    ) -> None:
        self._conn.execute(
            f"UPDATE {table} SET status = ?, error_message = ? WHERE id = ?",  # noqa: S608
            (status, error_message, unit_id),
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Chunks + vectors
    # ------------------------------------------------------------------

    def add_chunks(self, chunks: list[Chunk], vec_table: str) -> list[int]:
        """Insert *chunks* and their embeddings atomically. Returns the new rowids.

        Either every chunk (and its vector) is stored or, on any error,
        none of them are.
        """
        rowids: list[int] = []
        with self._conn:
            for chunk in chunks:
                if chunk.embedding is None:
                    raise ValueError(f"Chunk {chunk.chunk_index} has no embedding.")
                cur = self._conn.execute(
                    """
                    INSERT INTO chunks (id, source_id, project_id, chunk_index, content,
                                        metadata, embedding_model, tokens_count)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        chunk.id,
                        chunk.source_id,
                        chunk.project_id,
                        chunk.chunk_index,
                        chunk.content,
                        chunk.metadata,
                        chunk.embedding_model,
                        chunk.tokens_count,
                    ),
                )
                rowid = cur.lastrowid
                self._conn.execute(
                    f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                    (rowid, json.dumps(chunk.embedding)),
                )
                chunk.rowid = rowid
                rowids.append(rowid)
        return rowids

    def list_chunks(self, source_id: str) -> list[Chunk]:
        """Return a source's chunks in insertion order."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLS} FROM chunks WHERE source_id = ? ORDER BY rowid",
            (source_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_source(self, source_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE source_id = ?", (source_id,)
        ).fetchone()[0]

    def chunk_totals(self, source_id: str) -> tuple[int, int]:
        """Return (chunk count, token sum) over the live chunk rows of a source."""
        row = self._conn.execute(
            "SELECT COUNT(*), COALESCE(SUM(tokens_count), 0) FROM chunks WHERE source_id = ?",
            (source_id,),
        ).fetchone()
        return row[0], row[1]

    def delete_chunks_by_source(self, source_id: str) -> int:
        """Delete every chunk of a source plus its vectors. Returns chunks deleted."""
        return self._delete_chunks("source_id = ?", (source_id,))

    def delete_chunks_by_link(self, source_id: str, link_id: str) -> int:
        """Delete the chunks written for one website link."""
        return self._delete_chunks(
            "source_id = ? AND json_extract(metadata, '$.link_id') = ?", (source_id, link_id)
        )

    def _delete_chunks(self, where: str, params: tuple) -> int:
        rowids = [
            r[0]
            for r in self._conn.execute(
                f"SELECT rowid FROM chunks WHERE {where}", params  # noqa: S608
            ).fetchall()
        ]
        if not rowids:
            return 0
        placeholders = ",".join("?" * len(rowids))
        with self._conn:
            for table in list_vec_tables(self._conn):
                self._conn.execute(
                    f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                    rowids,
                )
            self._conn.execute(
                f"DELETE FROM chunks WHERE rowid IN ({placeholders})",  # noqa: S608
                rowids,
            )
        return len(rowids)

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        project_id: str,
        threshold: float,
        limit: int,
    ) -> list[tuple[Chunk, float]]:
        """Cosine nearest-neighbour query scoped to *project_id*.

        Returns (chunk, similarity) pairs with ``similarity >= threshold``,
        best-first, where similarity = 1 - cosine distance. Chunks without a
        vector row never match.
        """
        rows = self._conn.execute(
            f"""
            SELECT * FROM (
                SELECT c.rowid AS rowid, c.id, c.source_id, c.project_id, c.chunk_index,
                       c.content, c.metadata, c.embedding_model, c.tokens_count, c.created_at,
                       vec_distance_cosine(v.embedding, ?) AS distance
                FROM chunks c
                JOIN {table} v ON v.rowid = c.rowid
                WHERE c.project_id = ?
            )
            WHERE 1.0 - distance >= ?
            ORDER BY distance
            LIMIT ?
            """,  # noqa: S608
            (json.dumps(embedding), project_id, threshold, limit),
        ).fetchall()
        return [(_row_to_chunk(r), 1.0 - r["distance"]) for r in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _one(self, sql: str, *params: object) -> sqlite3.Row | None:
        return self._conn.execute(sql, params).fetchone()


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_source(row: sqlite3.Row, payload: SourcePayload) -> Source:
    return Source(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        payload=payload,
        status=row["status"],
        error_message=row["error_message"],
        chunks_count=row["chunks_count"],
        tokens_count=row["tokens_count"],
        auto_retrain=bool(row["auto_retrain"]),
        last_retrained_at=row["last_retrained_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_link(row: sqlite3.Row) -> WebsiteLink:
    return WebsiteLink(
        id=row["id"],
        source_id=row["source_id"],
        url=row["url"],
        title=row["title"],
        content_size=row["content_size"],
        status=row["status"],
        is_excluded=bool(row["is_excluded"]),
        error_message=row["error_message"],
        last_crawled_at=row["last_crawled_at"],
    )


def _row_to_page(row: sqlite3.Row) -> NotionPage:
    return NotionPage(
        id=row["id"],
        source_id=row["source_id"],
        notion_page_id=row["notion_page_id"],
        title=row["title"],
        page_type=row["page_type"],
        status=row["status"],
        is_excluded=bool(row["is_excluded"]),
        content_size=row["content_size"],
        error_message=row["error_message"],
        last_synced_at=row["last_synced_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        source_id=row["source_id"],
        project_id=row["project_id"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        metadata=row["metadata"],
        embedding_model=row["embedding_model"],
        tokens_count=row["tokens_count"],
        created_at=row["created_at"],
    )
