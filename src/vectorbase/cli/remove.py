"""vectorbase remove — source lifecycle management.

Removes a source and all its associated data from the knowledge base:
  - chunks (+ rows in every vec table)
  - sitemap links / Notion pages
  - the stored document file (document sources)
  - source record

Usage:
  vectorbase remove <source-id>
  vectorbase remove <source-id> --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vectorbase.cli.context import DEFAULT_DB, load_project_config, project_dir_for, require_db
from vectorbase.cli.errors import err_source_not_found
from vectorbase.db.models import DocumentPayload
from vectorbase.db.repository import Repository
from vectorbase.ingest.storage import LocalStorage

console = Console()


def remove_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id to remove.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a source and all its data from the knowledge base."""
    conn = require_db(db)
    repo = Repository(conn)

    try:
        existing = repo.get_source(source_id)
        if existing is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks_by_source(existing.id)
        console.print(f"\nRemove source: [bold]{existing.name}[/] ({existing.type})")
        console.print(f"  Chunks: {chunk_count}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        repo.delete_source(existing.id)
        if isinstance(existing.payload, DocumentPayload):
            cfg = load_project_config(db)
            storage = LocalStorage(project_dir_for(db) / cfg.storage.root)
            storage.delete([existing.payload.storage_path])

        console.print(f"\n[green]✓[/] Removed: {existing.name}")
        console.print(f"  {chunk_count} chunks deleted")
    finally:
        conn.close()
