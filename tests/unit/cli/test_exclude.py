"""Tests for vectorbase exclude."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from vectorbase.cli.main import app
from vectorbase.db.models import NotionPayload, Source, TextPayload, WebsitePayload

runner = CliRunner()


@pytest.fixture
def db(tmp_path: Path, repo) -> Path:
    runner.invoke(app, ["init", str(tmp_path), "--name", "Ex KB"])
    return tmp_path / ".vectorbase.db"


def _website(repo) -> None:
    repo.add_source(
        Source(
            id="web",
            project_id="ex-kb",
            name="Docs",
            payload=WebsitePayload(url="https://x.io/sitemap.xml", crawl_type="sitemap"),
        )
    )
    repo.add_website_links("web", ["https://x.io/a", "https://x.io/b"])


def test_exclude_and_include_link(db: Path, repo) -> None:
    _website(repo)
    link = repo.list_website_links("web")[0]

    result = runner.invoke(app, ["exclude", "web", link.id, "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Excluded: https://x.io/a" in result.output
    assert [x.url for x in repo.list_website_links("web", include_excluded=False)] == ["https://x.io/b"]

    result = runner.invoke(app, ["exclude", "web", link.id, "--undo", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Included" in result.output
    assert len(repo.list_website_links("web", include_excluded=False)) == 2


def test_exclude_link_of_other_source(db: Path, repo) -> None:
    _website(repo)
    repo.add_source(
        Source(id="web2", project_id="ex-kb", name="Other", payload=WebsitePayload(url="https://y.io"))
    )
    link = repo.list_website_links("web")[0]
    result = runner.invoke(app, ["exclude", "web2", link.id, "--db", str(db)])
    assert result.exit_code == 1
    assert "Link not found" in result.output


def test_exclude_notion_page_by_notion_id(db: Path, repo) -> None:
    repo.add_source(
        Source(
            id="nt",
            project_id="ex-kb",
            name="Wiki",
            payload=NotionPayload(access_token_encrypted="00:00"),
        )
    )
    repo.add_notion_pages("nt", [("p1", "Handbook", "page"), ("d1", None, "database")])

    result = runner.invoke(app, ["exclude", "nt", "p1", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "Excluded: Handbook" in result.output
    remaining = repo.list_notion_pages("nt", include_excluded=False)
    assert [p.notion_page_id for p in remaining] == ["d1"]


def test_exclude_unknown_notion_page(db: Path, repo) -> None:
    repo.add_source(
        Source(id="nt", project_id="ex-kb", name="Wiki", payload=NotionPayload(access_token_encrypted="00:00"))
    )
    result = runner.invoke(app, ["exclude", "nt", "missing", "--db", str(db)])
    assert result.exit_code == 1
    assert "Notion page not found" in result.output


def test_exclude_rejects_text_source(db: Path, repo) -> None:
    repo.add_source(Source(id="t", project_id="ex-kb", name="T", payload=TextPayload(content="x")))
    result = runner.invoke(app, ["exclude", "t", "anything", "--db", str(db)])
    assert result.exit_code == 1
    assert "no links or pages" in result.output


def test_exclude_unknown_source(db: Path) -> None:
    result = runner.invoke(app, ["exclude", "ghost", "x", "--db", str(db)])
    assert result.exit_code == 1
    assert "Source not found" in result.output
