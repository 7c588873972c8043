"""Tests for the Repository pattern."""

from __future__ import annotations

import json
import sqlite3

import pytest

from vectorbase.db.models import (
    Chunk,
    DocumentPayload,
    NotionPayload,
    QaPayload,
    Source,
    TextPayload,
    WebsitePayload,
)
from vectorbase.db.vectors import ensure_vec_table

MODEL = "test/fake-embed"


@pytest.fixture
def vec_table(tmp_db):
    return ensure_vec_table(tmp_db, MODEL, dimensions=3)


def _source(id="src-1", payload=None, project="proj", name="Source", auto_retrain=False):
    return Source(
        id=id,
        project_id=project,
        name=name,
        payload=payload or TextPayload(content="hello"),
        auto_retrain=auto_retrain,
    )


def _chunk(source_id="src-1", index=0, content="hello world", vector=None, meta=None, id=None):
    return Chunk(
        id=id or f"{source_id}-c{index}",
        source_id=source_id,
        project_id="proj",
        chunk_index=index,
        content=content,
        embedding_model=MODEL,
        tokens_count=3,
        metadata=json.dumps(meta or {}),
        embedding=vector or [1.0, 0.0, 0.0],
    )


# ------------------------------------------------------------------
# Sources + payload variants
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "payload",
    [
        TextPayload(content="some text"),
        QaPayload(question="Why?", answer="Because."),
        WebsitePayload(
            url="https://example.com",
            crawl_type="sitemap",
            sitemap_url="https://example.com/sitemap.xml",
            include_paths=["/docs/*"],
            exclude_paths=["/docs/old/*"],
        ),
        DocumentPayload(
            file_name="a.pdf", file_type="application/pdf", storage_path="src-1/a.pdf", file_size=10
        ),
        NotionPayload(access_token_encrypted="iv:ct", workspace_id="w1", workspace_name="WS"),
    ],
)
def test_add_and_get_source_payload_variants(repo, payload):
    repo.add_source(_source(payload=payload))
    result = repo.get_source("src-1")
    assert result is not None
    assert result.payload == payload
    assert result.status == "pending"
    assert result.chunks_count == 0


def test_source_type_follows_payload(repo):
    repo.add_source(_source(payload=QaPayload(question="q", answer="a")))
    assert repo.get_source("src-1").type == "qa"


def test_get_source_not_found(repo):
    assert repo.get_source("nonexistent") is None


def test_list_sources_filters_by_project(repo):
    repo.add_source(_source(id="s1", project="a"))
    repo.add_source(_source(id="s2", project="b"))
    repo.add_source(_source(id="s3", project="a"))
    assert [s.id for s in repo.list_sources("a")] == ["s1", "s3"]
    assert len(repo.list_sources()) == 3


def test_add_source_duplicate_id_leaves_no_partial_payload(repo):
    repo.add_source(_source(payload=TextPayload(content="first")))
    with pytest.raises(sqlite3.IntegrityError):
        repo.add_source(_source(payload=QaPayload(question="q", answer="a")))
    assert repo.get_source("src-1").payload == TextPayload(content="first")


def test_list_sources_by_status(repo):
    for n in range(3):
        repo.add_source(_source(id=f"s{n}"))
    repo.claim_for_processing("s1")
    assert [s.id for s in repo.list_sources_by_status("pending")] == ["s0", "s2"]
    assert [s.id for s in repo.list_sources_by_status("pending", limit=1)] == ["s0"]
    assert [s.id for s in repo.list_sources_by_status("processing")] == ["s1"]


def test_update_source_name_flag_and_payload(repo):
    repo.add_source(_source(payload=QaPayload(question="q?", answer="a.")))
    assert repo.update_source(
        "src-1", name="Renamed", auto_retrain=True, payload=QaPayload(question="new q?", answer="a.")
    )
    source = repo.get_source("src-1")
    assert (source.name, source.auto_retrain) == ("Renamed", True)
    assert source.payload == QaPayload(question="new q?", answer="a.")
    assert source.status == "pending"


def test_update_source_website_settings(repo):
    repo.add_source(_source(payload=WebsitePayload(url="https://x.io", crawl_type="crawl")))
    repo.update_source(
        "src-1", payload=WebsitePayload(url="https://y.io", crawl_type="single", exclude_paths=["/blog"])
    )
    payload = repo.get_source("src-1").payload
    assert (payload.url, payload.crawl_type, payload.exclude_paths) == ("https://y.io", "single", ["/blog"])


def test_update_source_rejects_mismatched_or_fixed_payloads(repo):
    repo.add_source(_source(payload=TextPayload(content="before")))
    with pytest.raises(ValueError):
        repo.update_source("src-1", name="Lost", payload=QaPayload(question="q", answer="a"))
    source = repo.get_source("src-1")
    assert (source.name, source.payload.content) == ("Source", "before")

    repo.add_source(
        _source(id="doc", payload=DocumentPayload(file_name="a.pdf", file_type="pdf", storage_path="p"))
    )
    with pytest.raises(ValueError):
        repo.update_source(
            "doc", payload=DocumentPayload(file_name="b.pdf", file_type="pdf", storage_path="q")
        )


def test_update_source_missing(repo):
    assert repo.update_source("ghost", name="x") is False


def test_delete_source_removes_chunks_and_vectors(repo, vec_table, tmp_db):
    repo.add_source(_source())
    repo.add_chunks([_chunk(index=0), _chunk(index=1)], vec_table)
    repo.delete_source("src-1")
    assert repo.get_source("src-1") is None
    assert repo.count_chunks_by_source("src-1") == 0
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 0


# ------------------------------------------------------------------
# State transitions
# ------------------------------------------------------------------


def test_claim_for_processing_is_exclusive(repo):
    repo.add_source(_source())
    assert repo.claim_for_processing("src-1") is True
    assert repo.get_source("src-1").status == "processing"
    assert repo.claim_for_processing("src-1") is False


def test_claim_for_processing_missing_source(repo):
    assert repo.claim_for_processing("missing") is False


def test_mark_source_completed_counts_live_chunks(repo, vec_table):
    repo.add_source(_source())
    repo.claim_for_processing("src-1")
    repo.add_chunks([_chunk(index=0), _chunk(index=1)], vec_table)
    assert repo.mark_source_completed("src-1") == (2, 6)
    src = repo.get_source("src-1")
    assert src.status == "completed"
    assert (src.chunks_count, src.tokens_count) == (2, 6)
    assert src.error_message is None


def test_mark_source_failed_records_error(repo):
    repo.add_source(_source())
    repo.mark_source_failed("src-1", "No content to process")
    src = repo.get_source("src-1")
    assert src.status == "failed"
    assert src.error_message == "No content to process"
    assert src.chunks_count == 0


def test_reset_source_clears_error_and_counts(repo, vec_table):
    repo.add_source(_source())
    repo.mark_source_failed("src-1", "boom")
    repo.reset_source("src-1")
    src = repo.get_source("src-1")
    assert src.status == "pending"
    assert src.error_message is None


def test_auto_retrain_candidates(repo, tmp_db):
    site = WebsitePayload(url="https://example.com")
    repo.add_source(_source(id="due", payload=site, auto_retrain=True))
    repo.add_source(_source(id="off", payload=site, auto_retrain=False))
    repo.add_source(_source(id="text", auto_retrain=True))
    repo.add_source(_source(id="fresh", payload=site, auto_retrain=True))
    for sid in ("due", "off", "text", "fresh"):
        repo.mark_source_completed(sid)
    tmp_db.execute(
        "UPDATE sources SET last_retrained_at = '2026-01-01 00:00:00' WHERE id = 'due'"
    )
    tmp_db.execute(
        "UPDATE sources SET last_retrained_at = '2026-01-10 00:00:00' WHERE id = 'fresh'"
    )
    tmp_db.commit()

    ids = [s.id for s in repo.list_auto_retrain_candidates("2026-01-05 00:00:00")]
    assert ids == ["due"]


# ------------------------------------------------------------------
# Website links / Notion pages
# ------------------------------------------------------------------


def test_add_website_links_skips_duplicates(repo):
    repo.add_source(_source(payload=WebsitePayload(url="https://x.io", crawl_type="sitemap")))
    assert repo.add_website_links("src-1", ["https://x.io/a", "https://x.io/b"]) == 2
    assert repo.add_website_links("src-1", ["https://x.io/b", "https://x.io/c"]) == 1
    assert [link.url for link in repo.list_website_links("src-1")] == [
        "https://x.io/a",
        "https://x.io/b",
        "https://x.io/c",
    ]


def test_link_lifecycle_and_exclusion(repo):
    repo.add_source(_source(payload=WebsitePayload(url="https://x.io", crawl_type="sitemap")))
    repo.add_website_links("src-1", ["https://x.io/a", "https://x.io/b"])
    a, b = repo.list_website_links("src-1")

    repo.mark_link_processing(a.id)
    repo.mark_link_completed(a.id, "Page A", 1234)
    repo.mark_link_failed(b.id, "HTTP 404")
    a, b = repo.list_website_links("src-1")
    assert (a.status, a.title, a.content_size) == ("completed", "Page A", 1234)
    assert (b.status, b.error_message) == ("failed", "HTTP 404")

    repo.set_link_excluded(b.id, True)
    assert [link.id for link in repo.list_website_links("src-1", include_excluded=False)] == [a.id]

    repo.reset_website_links("src-1")
    assert {link.status for link in repo.list_website_links("src-1")} == {"pending"}


def test_notion_pages_lifecycle(repo):
    repo.add_source(_source(payload=NotionPayload(access_token_encrypted="x")))
    assert repo.add_notion_pages("src-1", [("p1", "Page", "page"), ("d1", None, "database")]) == 2
    assert repo.add_notion_pages("src-1", [("p1", "Page", "page")]) == 0
    page, db = repo.list_notion_pages("src-1")
    assert (page.page_type, db.page_type) == ("page", "database")

    repo.mark_page_completed(page.id, "Renamed", 99)
    repo.set_page_excluded(db.id, True)
    pages = repo.list_notion_pages("src-1", include_excluded=False)
    assert [(p.title, p.status) for p in pages] == [("Renamed", "completed")]


def test_update_notion_sync(repo):
    repo.add_source(_source(payload=NotionPayload(access_token_encrypted="x")))
    repo.update_notion_sync("src-1", "syncing")
    payload = repo.get_source("src-1").payload
    assert payload.sync_status == "syncing"
    assert payload.last_synced_at is not None


def test_update_website_crawl_stats(repo):
    repo.add_source(_source(payload=WebsitePayload(url="https://x.io")))
    repo.update_website_crawl_stats("src-1", 7)
    payload = repo.get_source("src-1").payload
    assert payload.pages_crawled == 7
    assert payload.last_crawled_at is not None


def test_update_website_link_resets_and_drops_chunks(repo, vec_table):
    repo.add_source(_source(payload=WebsitePayload(url="https://x.io", crawl_type="sitemap")))
    repo.add_website_links("src-1", ["https://x.io/a", "https://x.io/b"])
    a, b = repo.list_website_links("src-1")
    repo.mark_link_completed(a.id, "Page A", 10)
    repo.add_chunks(
        [_chunk(index=0, meta={"link_id": a.id}), _chunk(index=1, meta={"link_id": b.id})], vec_table
    )

    assert repo.update_website_link(a.id, "https://x.io/a2")
    a = repo.get_website_link(a.id)
    assert (a.url, a.status, a.title, a.content_size) == ("https://x.io/a2", "pending", None, 0)
    assert [c.metadata_dict["link_id"] for c in repo.list_chunks("src-1")] == [b.id]

    with pytest.raises(sqlite3.IntegrityError):
        repo.update_website_link(a.id, "https://x.io/b")
    assert repo.update_website_link("ghost", "https://x.io/z") is False


def test_delete_website_link_and_recount(repo, vec_table):
    repo.add_source(_source(payload=WebsitePayload(url="https://x.io", crawl_type="sitemap")))
    repo.add_website_links("src-1", ["https://x.io/a", "https://x.io/b"])
    a, b = repo.list_website_links("src-1")
    for link in (a, b):
        repo.mark_link_completed(link.id, "T", 1)
    repo.add_chunks([_chunk(index=0, meta={"link_id": a.id})], vec_table)
    assert repo.refresh_pages_crawled("src-1") == 2

    assert repo.delete_website_link(a.id)
    assert [link.id for link in repo.list_website_links("src-1")] == [b.id]
    assert repo.count_chunks_by_source("src-1") == 0
    assert repo.refresh_pages_crawled("src-1") == 1
    assert repo.get_source("src-1").payload.pages_crawled == 1
    assert repo.delete_website_link(a.id) is False


def test_replace_notion_pages(repo, vec_table):
    repo.add_source(_source(payload=NotionPayload(access_token_encrypted="x")))
    repo.add_notion_pages("src-1", [("p1", "One", "page"), ("p2", "Two", "page")])
    one = repo.list_notion_pages("src-1")[0]
    repo.mark_page_completed(one.id, "One", 5)
    repo.add_chunks(
        [_chunk(index=0, meta={"notion_page_id": "p1"}), _chunk(index=1, meta={"notion_page_id": "p2"})],
        vec_table,
    )

    assert repo.replace_notion_pages("src-1", [("p1", "One", "page"), ("d3", None, "database")]) == (1, 1)
    pages = repo.list_notion_pages("src-1")
    assert [(p.notion_page_id, p.status) for p in pages] == [("p1", "completed"), ("d3", "pending")]
    assert [c.metadata_dict["notion_page_id"] for c in repo.list_chunks("src-1")] == ["p1"]


# ------------------------------------------------------------------
# Chunks + vectors
# ------------------------------------------------------------------


def test_add_chunks_returns_rowids_and_writes_vectors(repo, vec_table, tmp_db):
    repo.add_source(_source())
    rowids = repo.add_chunks([_chunk(index=0), _chunk(index=1)], vec_table)
    assert len(rowids) == 2
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 2
    chunks = repo.list_chunks("src-1")
    assert [c.chunk_index for c in chunks] == [0, 1]
    assert chunks[0].embedding is None


def test_add_chunks_is_all_or_nothing(repo, vec_table):
    repo.add_source(_source())
    bad = _chunk(index=1)
    bad.embedding = None
    with pytest.raises(ValueError):
        repo.add_chunks([_chunk(index=0), bad], vec_table)
    assert repo.count_chunks_by_source("src-1") == 0


def test_add_chunks_wrong_dimensions_rolls_back(repo, vec_table):
    repo.add_source(_source())
    with pytest.raises(sqlite3.Error):
        repo.add_chunks([_chunk(index=0), _chunk(index=1, vector=[1.0, 2.0])], vec_table)
    assert repo.count_chunks_by_source("src-1") == 0


def test_delete_chunks_by_link(repo, vec_table, tmp_db):
    repo.add_source(_source())
    repo.add_chunks(
        [
            _chunk(index=0, meta={"link_id": "l1"}),
            _chunk(index=1, meta={"link_id": "l2"}),
            _chunk(index=2, meta={"link_id": "l1"}),
        ],
        vec_table,
    )
    assert repo.delete_chunks_by_link("src-1", "l1") == 2
    remaining = repo.list_chunks("src-1")
    assert [c.metadata_dict["link_id"] for c in remaining] == ["l2"]
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 1


def test_search_vec_threshold_order_and_project_scope(repo, vec_table):
    repo.add_source(_source(id="s1"))
    repo.add_source(_source(id="s2", project="other"))
    repo.add_chunks(
        [
            _chunk("s1", 0, "exact", [1.0, 0.0, 0.0]),
            _chunk("s1", 1, "close", [1.0, 0.5, 0.0]),
            _chunk("s1", 2, "orthogonal", [0.0, 1.0, 0.0]),
        ],
        vec_table,
    )
    other = _chunk("s2", 0, "other project", [1.0, 0.0, 0.0])
    other.project_id = "other"
    repo.add_chunks([other], vec_table)

    results = repo.search_vec(vec_table, [1.0, 0.0, 0.0], "proj", threshold=0.5, limit=10)
    assert [c.content for c, _ in results] == ["exact", "close"]
    assert results[0][1] == pytest.approx(1.0, abs=1e-5)
    assert 0.5 <= results[1][1] < 1.0
