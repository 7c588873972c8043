"""vectorbase status command.

Without arguments: project overview plus one row per source.
With --source: the source's details, including sitemap links or Notion pages.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vectorbase.cli.context import DEFAULT_DB, load_project_config, open_db
from vectorbase.cli.errors import err_source_not_found
from vectorbase.config import VectorBaseConfig
from vectorbase.db.models import NotionPayload, Source, WebsitePayload
from vectorbase.db.repository import Repository
from vectorbase.db.vectors import list_vec_tables

console = Console()

_STATUS_STYLE = {
    "pending": "dim",
    "processing": "yellow",
    "completed": "green",
    "failed": "red",
}


def status_cmd(
    source: Annotated[
        str | None, typer.Option("--source", "-s", help="Show details for one source.")
    ] = None,
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Only list this project's sources.")
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
) -> None:
    """Show knowledge base status: sources, processing state, chunk counts."""
    cfg = load_project_config(db)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  vectorbase init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = Repository(conn)
        if source is not None:
            _show_source(repo, source)
        else:
            _show_project_panel(db, conn, cfg)
            _show_sources_table(repo.list_sources(project))
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def _show_project_panel(db: Path, conn: sqlite3.Connection, cfg: VectorBaseConfig) -> None:
    size_mb = db.stat().st_size / (1024 * 1024)
    vec_tables = list_vec_tables(conn)
    lines = [
        f"Project:    [bold]{cfg.project.name or cfg.project.id}[/] ({cfg.project.id})",
        f"Database:   {db} ({size_mb:.1f} MB)",
        f"Embedding:  {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Vec tables: {', '.join(vec_tables) if vec_tables else '[dim]none yet[/]'}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _status(value: str) -> str:
    style = _STATUS_STYLE.get(value, "")
    return f"[{style}]{value}[/]" if style else value


def _show_sources_table(sources: list[Source]) -> None:
    if not sources:
        console.print("[dim]No sources yet. Add one with:  vectorbase add --help[/]")
        return

    table = Table(title="Sources")
    table.add_column("ID", overflow="fold")
    table.add_column("Type")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Chunks", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Auto", justify="center")
    for src in sources:
        table.add_row(
            src.id,
            src.type,
            src.name,
            _status(src.status),
            str(src.chunks_count),
            f"{src.tokens_count:,}",
            "✓" if src.auto_retrain else "",
        )
    console.print(table)


def _show_source(repo: Repository, source_id: str) -> None:
    src = repo.get_source(source_id)
    if src is None:
        console.print(err_source_not_found(source_id))
        raise typer.Exit(1)

    lines = [
        f"Name:     [bold]{src.name}[/]",
        f"Type:     {src.type}",
        f"Project:  {src.project_id}",
        f"Status:   {_status(src.status)}",
        f"Chunks:   {src.chunks_count}  |  Tokens: {src.tokens_count:,}",
    ]
    if src.error_message:
        lines.append(f"Error:    [red]{src.error_message}[/]")
    if src.last_retrained_at:
        lines.append(f"Retrained: {src.last_retrained_at}")
    if isinstance(src.payload, WebsitePayload):
        lines.append(f"URL:      {src.payload.url} ({src.payload.crawl_type})")
        lines.append(f"Pages:    {src.payload.pages_crawled}")
    elif isinstance(src.payload, NotionPayload):
        lines.append(f"Workspace: {src.payload.workspace_name or '-'}")
        lines.append(f"Sync:     {src.payload.sync_status}")
    console.print(Panel("\n".join(lines), title=f"[bold]{src.id}[/]", expand=False))

    if isinstance(src.payload, WebsitePayload) and src.payload.crawl_type == "sitemap":
        table = Table(title="Links")
        table.add_column("ID", overflow="fold")
        table.add_column("URL", overflow="fold")
        table.add_column("Status")
        table.add_column("Size", justify="right")
        for link in repo.list_website_links(src.id):
            status = "excluded" if link.is_excluded else link.status
            table.add_row(link.id, link.url, _status(status), f"{link.content_size:,}")
        console.print(table)
    elif isinstance(src.payload, NotionPayload):
        table = Table(title="Notion pages")
        table.add_column("Notion ID", overflow="fold")
        table.add_column("Title")
        table.add_column("Type")
        table.add_column("Status")
        for page in repo.list_notion_pages(src.id):
            status = "excluded" if page.is_excluded else page.status
            table.add_row(page.notion_page_id, page.title or "", page.page_type, _status(status))
        console.print(table)
