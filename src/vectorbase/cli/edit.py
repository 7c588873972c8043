"""vectorbase edit / link — change a registered source after the fact.

Edits touch the stored source only; nothing is re-embedded until the
source is retrained (or the edited link re-crawled).

Usage:
  vectorbase edit <source-id> --name "New name" --no-auto-retrain
  vectorbase edit <source-id> --content "Replacement text"
  vectorbase edit <source-id> --question "..." --answer "..."
  vectorbase edit <source-id> --url https://docs.example.com --exclude "/blog/*"
  vectorbase edit <source-id> --page <page-id> --database <db-id>
  vectorbase link edit <source-id> <link-id> https://example.com/new-path
  vectorbase link rm <source-id> <link-id>
"""

from __future__ import annotations

import sqlite3
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vectorbase.cli.context import DEFAULT_DB, check_url, require_db
from vectorbase.cli.errors import err_source_not_found
from vectorbase.db.models import (
    CRAWL_TYPES,
    NotionPayload,
    QaPayload,
    Source,
    SourcePayload,
    TextPayload,
    WebsiteLink,
    WebsitePayload,
)
from vectorbase.db.repository import Repository

console = Console()

link_app = typer.Typer(help="Change or remove a website source's links.")

DbOption = Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")]


def edit_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id (see: vectorbase status).")],
    name: Annotated[str | None, typer.Option("--name", "-n", help="New display name.")] = None,
    auto_retrain: Annotated[
        bool | None,
        typer.Option("--auto-retrain/--no-auto-retrain", help="Turn 24h auto-retrain on or off."),
    ] = None,
    content: Annotated[
        str | None, typer.Option("--content", "-c", help="Replacement text (text sources).")
    ] = None,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Read replacement text from a file (text sources)."),
    ] = None,
    question: Annotated[
        str | None, typer.Option("--question", "-q", help="New question (qa sources).")
    ] = None,
    answer: Annotated[
        str | None, typer.Option("--answer", "-a", help="New answer (qa sources).")
    ] = None,
    url: Annotated[str | None, typer.Option("--url", help="New site URL (website sources).")] = None,
    crawl_type: Annotated[
        str | None, typer.Option("--crawl-type", "-t", help="single | sitemap | crawl")
    ] = None,
    include: Annotated[
        list[str] | None,
        typer.Option("--include", help="Replace include patterns (website). Repeatable."),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Replace exclude patterns (website). Repeatable."),
    ] = None,
    page: Annotated[
        list[str] | None,
        typer.Option("--page", help="Notion page id to keep selected. Repeatable."),
    ] = None,
    database: Annotated[
        list[str] | None,
        typer.Option("--database", help="Notion database id to keep selected. Repeatable."),
    ] = None,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Rename a source, toggle auto-retrain, or replace its content.

    --page/--database replace a Notion source's whole page selection;
    pages left out are removed together with their chunks.
    """
    if content is not None and file is not None:
        console.print("[red]Error:[/] Pass at most one of --content or --file.")
        raise typer.Exit(1)
    if file is not None:
        if not file.is_file():
            console.print(f"[red]Error:[/] File not found: '{file}'")
            raise typer.Exit(1)
        content = file.read_text(encoding="utf-8")
    if crawl_type is not None and crawl_type not in CRAWL_TYPES:
        console.print(
            f"[red]Error:[/] Unknown crawl type '{crawl_type}'. Use one of: {', '.join(CRAWL_TYPES)}"
        )
        raise typer.Exit(1)
    if url is not None:
        check_url(url)

    conn = require_db(db)
    try:
        repo = Repository(conn)
        source = repo.get_source(source_id)
        if source is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1)

        payload = _edited_payload(
            source,
            content=content,
            question=question,
            answer=answer,
            url=url,
            crawl_type=crawl_type,
            include=include,
            exclude=exclude,
        )
        selection = [(pid, None, "page") for pid in page or []]
        selection += [(did, None, "database") for did in database or []]
        if selection and not isinstance(source.payload, NotionPayload):
            console.print("[red]Error:[/] --page/--database only apply to notion sources.")
            raise typer.Exit(1)
        if name is None and auto_retrain is None and payload is None and not selection:
            console.print("[yellow]Nothing to change.[/] See:  vectorbase edit --help")
            raise typer.Exit(1)

        repo.update_source(source_id, name=name, auto_retrain=auto_retrain, payload=payload)
        if selection:
            added, removed = repo.replace_notion_pages(source_id, selection)
            repo.refresh_source_counts(source_id)
            console.print(f"  Notion pages: {added} added, {removed} removed")
    finally:
        conn.close()

    console.print(f"[green]✓[/] Updated {source_id}")
    if payload is not None or selection:
        console.print(f"  Run:  vectorbase retrain {source_id}  to re-embed it.")


def _edited_payload(
    source: Source,
    *,
    content: str | None,
    question: str | None,
    answer: str | None,
    url: str | None,
    crawl_type: str | None,
    include: list[str] | None,
    exclude: list[str] | None,
) -> SourcePayload | None:
    """Return the source's payload with the given fields replaced, or None if none were given."""
    given = {
        "--content/--file": content,
        "--question": question,
        "--answer": answer,
        "--url": url,
        "--crawl-type": crawl_type,
        "--include": include,
        "--exclude": exclude,
    }
    applicable = {
        TextPayload: {"--content/--file"},
        QaPayload: {"--question", "--answer"},
        WebsitePayload: {"--url", "--crawl-type", "--include", "--exclude"},
    }.get(type(source.payload), set())
    misplaced = [flag for flag, value in given.items() if value is not None and flag not in applicable]
    if misplaced:
        console.print(
            f"[red]Error:[/] {', '.join(misplaced)} cannot be used on {source.type} sources."
        )
        raise typer.Exit(1)
    if all(value is None for value in given.values()):
        return None

    current = source.payload
    if isinstance(current, TextPayload):
        return TextPayload(content=content or "")
    if isinstance(current, QaPayload):
        return QaPayload(
            question=current.question if question is None else question,
            answer=current.answer if answer is None else answer,
        )
    if isinstance(current, WebsitePayload):
        return replace(
            current,
            url=url or current.url,
            crawl_type=crawl_type or current.crawl_type,
            include_paths=current.include_paths if include is None else list(include),
            exclude_paths=current.exclude_paths if exclude is None else list(exclude),
        )
    return None


# ------------------------------------------------------------------
# link edit / rm
# ------------------------------------------------------------------


@link_app.command("edit")
def link_edit_cmd(
    source_id: Annotated[str, typer.Argument(help="Website source id.")],
    link_id: Annotated[str, typer.Argument(help="Link id (see: vectorbase status -s <id>).")],
    url: Annotated[str, typer.Argument(help="New URL for the link.")],
    db: DbOption = DEFAULT_DB,
) -> None:
    """Point a link at a new URL; it goes back to pending and loses its chunks."""
    check_url(url)
    conn = require_db(db)
    try:
        repo = Repository(conn)
        link = _require_link(repo, source_id, link_id)
        try:
            repo.update_website_link(link.id, url)
        except sqlite3.IntegrityError as exc:
            console.print(f"[red]Error:[/] {source_id} already has a link for {url}")
            raise typer.Exit(1) from exc
        repo.refresh_pages_crawled(source_id)
        repo.refresh_source_counts(source_id)
    finally:
        conn.close()

    console.print(f"[green]✓[/] {link.url} → {url}")
    console.print(f"  Run:  vectorbase recrawl {source_id} {link_id}")


@link_app.command("rm")
def link_rm_cmd(
    source_id: Annotated[str, typer.Argument(help="Website source id.")],
    link_id: Annotated[str, typer.Argument(help="Link id to remove.")],
    db: DbOption = DEFAULT_DB,
) -> None:
    """Remove a link and the chunks crawled from it."""
    conn = require_db(db)
    try:
        repo = Repository(conn)
        link = _require_link(repo, source_id, link_id)
        repo.delete_website_link(link.id)
        repo.refresh_pages_crawled(source_id)
        chunks_count, _ = repo.refresh_source_counts(source_id)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Removed {link.url} ({chunks_count} chunks left in {source_id})")


def _require_link(repo: Repository, source_id: str, link_id: str) -> WebsiteLink:
    source = repo.get_source(source_id)
    if source is None:
        console.print(err_source_not_found(source_id))
        raise typer.Exit(1)
    if not isinstance(source.payload, WebsitePayload):
        console.print(f"[red]Error:[/] {source.type} sources have no links.")
        raise typer.Exit(1)
    link = repo.get_website_link(link_id)
    if link is None or link.source_id != source_id:
        console.print(f"[red]Error:[/] Link not found: {link_id}")
        raise typer.Exit(1)
    return link
