"""vectorbase add — register knowledge sources.

Each subcommand stores a new Source in ``pending`` state and prints its id.
Nothing is chunked or embedded here; run ``vectorbase process <id>`` next
(or pass ``--process`` to do both in one step).

Usage:
  vectorbase add text "Release notes" --file notes.md
  vectorbase add qa "Refunds" --question "Can I get a refund?" --answer "Within 30 days."
  vectorbase add website https://docs.example.com --crawl-type sitemap --include "/docs/*"
  vectorbase add document manual.pdf
  vectorbase add notion --token secret_... --page <page-id> --database <db-id>
"""

from __future__ import annotations

import logging
import mimetypes
import sqlite3
import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vectorbase.cli.context import (
    DEFAULT_DB,
    build_processor,
    check_url,
    load_project_config,
    project_dir_for,
    require_db,
)
from vectorbase.cli.errors import err_no_encryption_key, err_processing_failed
from vectorbase.config import ConfigError, VectorBaseConfig, encryption_key
from vectorbase.crypto import TokenCipher
from vectorbase.db.models import (
    CRAWL_TYPES,
    DocumentPayload,
    NotionPayload,
    QaPayload,
    Source,
    SourcePayload,
    TextPayload,
    WebsitePayload,
)
from vectorbase.db.repository import Repository
from vectorbase.ingest.notion import NotionFetcher, NotionOAuthError, exchange_code
from vectorbase.ingest.storage import LocalStorage

logger = logging.getLogger(__name__)
console = Console()

add_app = typer.Typer(help="Add a knowledge source (text, qa, website, document, notion).")

DbOption = Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")]
ProjectOption = Annotated[
    str | None,
    typer.Option("--project", "-p", help="Project id. Defaults to project.id from config."),
]
ProcessOption = Annotated[
    bool, typer.Option("--process", help="Process the source immediately after adding it.")
]


# ------------------------------------------------------------------
# text / qa
# ------------------------------------------------------------------


@add_app.command("text")
def add_text_cmd(
    name: Annotated[str, typer.Argument(help="Display name for the source.")],
    content: Annotated[
        str | None, typer.Option("--content", "-c", help="Inline text content.")
    ] = None,
    file: Annotated[
        Path | None, typer.Option("--file", "-f", help="Read content from a UTF-8 text file.")
    ] = None,
    project: ProjectOption = None,
    db: DbOption = DEFAULT_DB,
    process: ProcessOption = False,
) -> None:
    """Add a free-text source."""
    if (content is None) == (file is None):
        console.print("[red]Error:[/] Pass exactly one of --content or --file.")
        raise typer.Exit(1)
    if file is not None:
        if not file.is_file():
            console.print(f"[red]Error:[/] File not found: '{file}'")
            raise typer.Exit(1)
        content = file.read_text(encoding="utf-8")

    _add(db, project, name, TextPayload(content=content or ""), process=process)


@add_app.command("qa")
def add_qa_cmd(
    name: Annotated[str, typer.Argument(help="Display name for the source.")],
    question: Annotated[str, typer.Option("--question", "-q", help="The question.")],
    answer: Annotated[str, typer.Option("--answer", "-a", help="The answer.")],
    project: ProjectOption = None,
    db: DbOption = DEFAULT_DB,
    process: ProcessOption = False,
) -> None:
    """Add a question/answer pair."""
    _add(db, project, name, QaPayload(question=question, answer=answer), process=process)


# ------------------------------------------------------------------
# website
# ------------------------------------------------------------------


@add_app.command("website")
def add_website_cmd(
    url: Annotated[str, typer.Argument(help="Site URL (or sitemap URL).")],
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Display name. Defaults to the URL.")
    ] = None,
    crawl_type: Annotated[
        str, typer.Option("--crawl-type", "-t", help="single | sitemap | crawl")
    ] = "crawl",
    sitemap: Annotated[
        str | None,
        typer.Option("--sitemap", help="Explicit sitemap URL (sitemap crawl type)."),
    ] = None,
    include: Annotated[
        list[str] | None,
        typer.Option("--include", help="Path pattern to include, e.g. '/docs/*'. Repeatable."),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Path pattern to exclude. Repeatable."),
    ] = None,
    max_urls: Annotated[
        int | None,
        typer.Option("--max-urls", help="Cap on sitemap links to register."),
    ] = None,
    auto_retrain: Annotated[
        bool, typer.Option("--auto-retrain", help="Re-crawl automatically every 24h.")
    ] = False,
    project: ProjectOption = None,
    db: DbOption = DEFAULT_DB,
    process: ProcessOption = False,
) -> None:
    """Add a website: a single page, a sitemap, or a same-domain crawl."""
    if crawl_type not in CRAWL_TYPES:
        console.print(
            f"[red]Error:[/] Unknown crawl type '{crawl_type}'. Use one of: {', '.join(CRAWL_TYPES)}"
        )
        raise typer.Exit(1)
    for target in filter(None, (url, sitemap)):
        check_url(target)

    payload = WebsitePayload(
        url=url,
        crawl_type=crawl_type,
        sitemap_url=sitemap,
        include_paths=list(include or []),
        exclude_paths=list(exclude or []),
    )

    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        source = _new_source(cfg, project, name or url, payload, auto_retrain=auto_retrain)
        Repository(conn).add_source(source)
        console.print(f"[green]✓[/] Added website source [bold]{source.id}[/] ({crawl_type})")

        if crawl_type == "sitemap":
            _register_links(conn, cfg, db, source.id, max_urls or cfg.sitemap.max_urls)
        if process:
            _process(conn, cfg, db, source.id)
    finally:
        conn.close()


def _register_links(
    conn: sqlite3.Connection, cfg: VectorBaseConfig, db: Path, source_id: str, max_urls: int
) -> None:
    processor = build_processor(conn, cfg, db)
    try:
        added, result = processor.register_sitemap_links(source_id, max_urls=max_urls)
    except ValueError as exc:
        console.print(f"[yellow]⚠[/]  {exc}. Retry with:  vectorbase sitemap --source {source_id}")
        return
    console.print(
        f"  {added} link(s) registered from {result.sitemaps_processed} sitemap(s)"
        + (f", {len(result.errors)} error(s)" if result.errors else "")
    )


# ------------------------------------------------------------------
# document
# ------------------------------------------------------------------


@add_app.command("document")
def add_document_cmd(
    path: Annotated[Path, typer.Argument(help="PDF, DOCX, HTML, TXT, MD or image file.")],
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Display name. Defaults to the file name.")
    ] = None,
    project: ProjectOption = None,
    db: DbOption = DEFAULT_DB,
    process: ProcessOption = False,
) -> None:
    """Add a document; the file is copied into project storage."""
    if not path.is_file():
        console.print(f"[red]Error:[/] File not found: '{path}'")
        raise typer.Exit(1)

    data = path.read_bytes()
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        source_id = str(uuid.uuid4())
        storage = LocalStorage(project_dir_for(db) / cfg.storage.root)
        storage_path = storage.upload(f"{source_id}/{path.name}", data)

        payload = DocumentPayload(
            file_name=path.name,
            file_type=mime_type,
            storage_path=storage_path,
            file_size=len(data),
        )
        source = _new_source(cfg, project, name or path.name, payload, source_id=source_id)
        try:
            Repository(conn).add_source(source)
        except sqlite3.Error:
            storage.delete([storage_path])
            raise
        console.print(
            f"[green]✓[/] Added document source [bold]{source.id}[/] ({mime_type}, {len(data):,} bytes)"
        )
        if process:
            _process(conn, cfg, db, source.id)
    finally:
        conn.close()


# ------------------------------------------------------------------
# notion
# ------------------------------------------------------------------


@add_app.command("notion")
def add_notion_cmd(
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="NOTION_TOKEN", help="Notion integration access token."),
    ] = None,
    code: Annotated[
        str | None,
        typer.Option("--code", help="OAuth authorization code to exchange for a token."),
    ] = None,
    page: Annotated[
        list[str] | None, typer.Option("--page", help="Notion page id to sync. Repeatable.")
    ] = None,
    database: Annotated[
        list[str] | None,
        typer.Option("--database", help="Notion database id to sync. Repeatable."),
    ] = None,
    name: Annotated[
        str | None, typer.Option("--name", "-n", help="Display name. Defaults to the workspace.")
    ] = None,
    auto_retrain: Annotated[
        bool, typer.Option("--auto-retrain", help="Re-sync automatically every 24h.")
    ] = False,
    project: ProjectOption = None,
    db: DbOption = DEFAULT_DB,
    process: ProcessOption = False,
) -> None:
    """Add a Notion workspace source.

    Without --page/--database every page and database shared with the
    integration is attached.
    """
    if (token is None) == (code is None):
        console.print("[red]Error:[/] Pass exactly one of --token or --code.")
        raise typer.Exit(1)
    try:
        cipher = TokenCipher(encryption_key())
    except ConfigError as exc:
        console.print(err_no_encryption_key())
        raise typer.Exit(1) from exc

    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        workspace_id: str | None = None
        workspace_name = "Notion Workspace"
        if code is not None:
            try:
                exchanged = exchange_code(code, cfg.notion.redirect_uri)
            except NotionOAuthError as exc:
                console.print(f"[red]Error:[/] {exc}")
                raise typer.Exit(1) from exc
            token = exchanged.access_token
            workspace_id = exchanged.workspace_id
            workspace_name = exchanged.workspace_name

        entries = [(pid, None, "page") for pid in page or []]
        entries += [(did, None, "database") for did in database or []]
        if not entries:
            entries = _discover_notion_pages(token)
        if not entries:
            console.print("[red]Error:[/] No Notion pages are shared with this integration.")
            raise typer.Exit(1)

        payload = NotionPayload(
            access_token_encrypted=cipher.encrypt(token),
            workspace_id=workspace_id,
            workspace_name=workspace_name,
        )
        source = _new_source(cfg, project, name or workspace_name, payload, auto_retrain=auto_retrain)
        repo = Repository(conn)
        repo.add_source(source)
        repo.add_notion_pages(source.id, entries)
        console.print(
            f"[green]✓[/] Added Notion source [bold]{source.id}[/] ({len(entries)} page(s))"
        )
        if process:
            _process(conn, cfg, db, source.id)
    finally:
        conn.close()


def _discover_notion_pages(token: str) -> list[tuple[str, str | None, str]]:
    try:
        pages = NotionFetcher().list_accessible_pages(token)
    except Exception as exc:
        console.print(f"[red]Error:[/] Could not list Notion pages: {exc}")
        raise typer.Exit(1) from exc
    return [(p.id, p.title, p.type) for p in pages]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _new_source(
    cfg: VectorBaseConfig,
    project: str | None,
    name: str,
    payload: SourcePayload,
    *,
    auto_retrain: bool = False,
    source_id: str | None = None,
) -> Source:
    return Source(
        id=source_id or str(uuid.uuid4()),
        project_id=project or cfg.project.id,
        name=name,
        payload=payload,
        auto_retrain=auto_retrain,
    )


def _add(
    db: Path, project: str | None, name: str, payload: SourcePayload, *, process: bool
) -> None:
    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        source = _new_source(cfg, project, name, payload)
        Repository(conn).add_source(source)
        console.print(f"[green]✓[/] Added {source.type} source [bold]{source.id}[/]")
        if process:
            _process(conn, cfg, db, source.id)
    finally:
        conn.close()


def _process(conn: sqlite3.Connection, cfg: VectorBaseConfig, db: Path, source_id: str) -> None:
    result = build_processor(conn, cfg, db).process(source_id)
    if not result.success:
        console.print(err_processing_failed(source_id, result.error))
        raise typer.Exit(1)
    console.print(
        f"[green]✓[/] Processed: {result.chunks_created} chunks, {result.total_tokens:,} tokens"
    )
