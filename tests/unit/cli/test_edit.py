"""Tests for vectorbase edit / link edit / link rm."""

from __future__ import annotations

import json
import socket
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from vectorbase.cli.main import app
from vectorbase.db.models import (
    Chunk,
    NotionPayload,
    QaPayload,
    Source,
    TextPayload,
    WebsitePayload,
)
from vectorbase.db.vectors import ensure_vec_table

runner = CliRunner()


@pytest.fixture
def db(tmp_path: Path, repo) -> Path:
    runner.invoke(app, ["init", str(tmp_path), "--name", "Edit KB"])
    return tmp_path / ".vectorbase.db"


@pytest.fixture
def public_dns():
    addrinfo = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("93.184.216.34", 0))]
    with patch("vectorbase.ingest.net.socket.getaddrinfo", return_value=addrinfo):
        yield


def _add(repo, id, payload, name="Original") -> None:
    repo.add_source(Source(id=id, project_id="edit-kb", name=name, payload=payload))


def _website(repo) -> None:
    _add(repo, "web", WebsitePayload(url="https://x.io/sitemap.xml", crawl_type="sitemap"))
    repo.add_website_links("web", ["https://x.io/a", "https://x.io/b"])


def _link_chunk(repo, link_id: str, index: int) -> None:
    table = ensure_vec_table(repo.conn, "test/fake-embed", dimensions=3)
    repo.add_chunks(
        [
            Chunk(
                id=f"web-c{index}",
                source_id="web",
                project_id="edit-kb",
                chunk_index=index,
                content="crawled text",
                embedding_model="test/fake-embed",
                tokens_count=4,
                metadata=json.dumps({"link_id": link_id}),
                embedding=[1.0, 0.0, 0.0],
            )
        ],
        table,
    )


# ---------------------------------------------------------------------------
# edit
# ---------------------------------------------------------------------------


def test_edit_name_and_auto_retrain(db: Path, repo) -> None:
    _add(repo, "txt", TextPayload(content="hello"))
    result = runner.invoke(
        app, ["edit", "txt", "--name", "Renamed", "--auto-retrain", "--db", str(db)]
    )
    assert result.exit_code == 0, result.output
    assert "Updated txt" in result.output
    assert "retrain" not in result.output
    source = repo.get_source("txt")
    assert (source.name, source.auto_retrain) == ("Renamed", True)

    runner.invoke(app, ["edit", "txt", "--no-auto-retrain", "--db", str(db)])
    assert repo.get_source("txt").auto_retrain is False


def test_edit_text_content_from_file(db: Path, repo, tmp_path: Path) -> None:
    _add(repo, "txt", TextPayload(content="old"))
    notes = tmp_path / "notes.md"
    notes.write_text("new body", encoding="utf-8")
    result = runner.invoke(app, ["edit", "txt", "--file", str(notes), "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "vectorbase retrain txt" in result.output
    assert repo.get_source("txt").payload == TextPayload(content="new body")


def test_edit_qa_keeps_unchanged_half(db: Path, repo) -> None:
    _add(repo, "qa", QaPayload(question="Refunds?", answer="No."))
    result = runner.invoke(app, ["edit", "qa", "--answer", "Within 30 days.", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert repo.get_source("qa").payload == QaPayload(question="Refunds?", answer="Within 30 days.")


def test_edit_website_settings(db: Path, repo, public_dns) -> None:
    _add(repo, "web", WebsitePayload(url="https://x.io", crawl_type="crawl", exclude_paths=["/a"]))
    result = runner.invoke(
        app,
        ["edit", "web", "--url", "https://docs.x.io", "--exclude", "/blog/*", "--db", str(db)],
    )
    assert result.exit_code == 0, result.output
    payload = repo.get_source("web").payload
    assert (payload.url, payload.crawl_type, payload.exclude_paths) == (
        "https://docs.x.io",
        "crawl",
        ["/blog/*"],
    )


def test_edit_rejects_flags_for_other_types(db: Path, repo) -> None:
    _add(repo, "txt", TextPayload(content="hello"))
    result = runner.invoke(app, ["edit", "txt", "--question", "Why?", "--db", str(db)])
    assert result.exit_code == 1
    assert "cannot be used on text" in result.output
    assert repo.get_source("txt").payload == TextPayload(content="hello")


def test_edit_rejects_bad_url(db: Path, repo) -> None:
    _add(repo, "web", WebsitePayload(url="https://x.io"))
    result = runner.invoke(app, ["edit", "web", "--url", "ftp://x.io", "--db", str(db)])
    assert result.exit_code == 1
    assert "Invalid URL" in result.output
    assert repo.get_source("web").payload.url == "https://x.io"


def test_edit_notion_selection(db: Path, repo) -> None:
    _add(repo, "nt", NotionPayload(access_token_encrypted="x"))
    repo.add_notion_pages("nt", [("p1", "One", "page"), ("p2", "Two", "page")])
    result = runner.invoke(
        app, ["edit", "nt", "--page", "p1", "--database", "d9", "--db", str(db)]
    )
    assert result.exit_code == 0, result.output
    assert "1 added, 1 removed" in result.output
    assert [(p.notion_page_id, p.page_type) for p in repo.list_notion_pages("nt")] == [
        ("p1", "page"),
        ("d9", "database"),
    ]


def test_edit_nothing_to_change(db: Path, repo) -> None:
    _add(repo, "txt", TextPayload(content="hello"))
    result = runner.invoke(app, ["edit", "txt", "--db", str(db)])
    assert result.exit_code == 1
    assert "Nothing to change" in result.output


def test_edit_unknown_source(db: Path) -> None:
    result = runner.invoke(app, ["edit", "ghost", "--name", "x", "--db", str(db)])
    assert result.exit_code == 1
    assert "Source not found" in result.output


# ---------------------------------------------------------------------------
# link edit / rm
# ---------------------------------------------------------------------------


def test_link_edit_resets_link(db: Path, repo, public_dns) -> None:
    _website(repo)
    a = repo.list_website_links("web")[0]
    repo.mark_link_completed(a.id, "A", 10)
    _link_chunk(repo, a.id, 0)
    repo.refresh_source_counts("web")

    result = runner.invoke(app, ["link", "edit", "web", a.id, "https://x.io/a2", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "vectorbase recrawl web" in result.output
    link = repo.get_website_link(a.id)
    assert (link.url, link.status) == ("https://x.io/a2", "pending")
    assert repo.get_source("web").chunks_count == 0


def test_link_edit_duplicate_url(db: Path, repo, public_dns) -> None:
    _website(repo)
    a = repo.list_website_links("web")[0]
    result = runner.invoke(app, ["link", "edit", "web", a.id, "https://x.io/b", "--db", str(db)])
    assert result.exit_code == 1
    assert "already has a link" in result.output
    assert repo.get_website_link(a.id).url == "https://x.io/a"


def test_link_rm_drops_link_and_chunks(db: Path, repo) -> None:
    _website(repo)
    a, b = repo.list_website_links("web")
    for index, link in enumerate((a, b)):
        repo.mark_link_completed(link.id, "T", 1)
        _link_chunk(repo, link.id, index)
    repo.update_website_crawl_stats("web", 2)

    result = runner.invoke(app, ["link", "rm", "web", a.id, "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Removed https://x.io/a" in result.output
    assert [link.url for link in repo.list_website_links("web")] == ["https://x.io/b"]
    source = repo.get_source("web")
    assert (source.chunks_count, source.payload.pages_crawled) == (1, 1)


def test_link_rm_wrong_source(db: Path, repo) -> None:
    _website(repo)
    _add(repo, "txt", TextPayload(content="hello"))
    link = repo.list_website_links("web")[0]

    result = runner.invoke(app, ["link", "rm", "txt", link.id, "--db", str(db)])
    assert result.exit_code == 1
    assert "have no links" in result.output

    result = runner.invoke(app, ["link", "rm", "web", "ghost", "--db", str(db)])
    assert result.exit_code == 1
    assert "Link not found" in result.output
