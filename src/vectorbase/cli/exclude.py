"""vectorbase exclude — skip a sitemap link or Notion page on future runs.

Usage:
  vectorbase exclude <source-id> <link-id>
  vectorbase exclude <source-id> <notion-page-id>
  vectorbase exclude <source-id> <unit-id> --undo
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vectorbase.cli.context import DEFAULT_DB, require_db
from vectorbase.cli.errors import err_source_not_found
from vectorbase.db.models import NotionPayload, WebsitePayload
from vectorbase.db.repository import Repository

console = Console()


def exclude_cmd(
    source_id: Annotated[str, typer.Argument(help="Website or Notion source id.")],
    unit_id: Annotated[
        str, typer.Argument(help="Link id, or Notion page id (see: vectorbase status -s <id>).")
    ],
    undo: Annotated[
        bool, typer.Option("--undo", help="Include the link/page again.")
    ] = False,
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
) -> None:
    """Exclude a link or Notion page from processing (or include it with --undo).

    Chunks already stored for it stay until the next retrain.
    """
    conn = require_db(db)
    try:
        repo = Repository(conn)
        source = repo.get_source(source_id)
        if source is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1)

        if isinstance(source.payload, WebsitePayload):
            link = repo.get_website_link(unit_id)
            if link is None or link.source_id != source_id:
                console.print(f"[red]Error:[/] Link not found: {unit_id}")
                raise typer.Exit(1)
            repo.set_link_excluded(link.id, not undo)
            label = link.url
        elif isinstance(source.payload, NotionPayload):
            page = next(
                (p for p in repo.list_notion_pages(source_id) if unit_id in (p.id, p.notion_page_id)),
                None,
            )
            if page is None:
                console.print(f"[red]Error:[/] Notion page not found: {unit_id}")
                raise typer.Exit(1)
            repo.set_page_excluded(page.id, not undo)
            label = page.title or page.notion_page_id
        else:
            console.print(
                f"[red]Error:[/] {source.type} sources have no links or pages to exclude."
            )
            raise typer.Exit(1)
    finally:
        conn.close()

    console.print(f"[green]✓[/] {'Included' if undo else 'Excluded'}: {label}")
