"""vectorbase process / retrain / auto-retrain / recrawl.

Usage:
  vectorbase process <source-id> [--max-depth 3] [--max-pages 25]
  vectorbase process --pending [--limit 10]
  vectorbase retrain <source-id> [--force]
  vectorbase auto-retrain
  vectorbase recrawl <source-id> <link-id>
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from vectorbase.cli.context import DEFAULT_DB, build_processor, load_project_config, require_db
from vectorbase.cli.errors import err_processing_failed, err_source_not_found
from vectorbase.processing.orchestrator import ProcessingOptions, ProcessingResult
from vectorbase.processing.retrain import (
    PENDING_BATCH,
    SourceReport,
    auto_retrain,
    process_pending,
    recrawl_link,
    retrain_source,
)

console = Console()

DbOption = Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")]


def process_cmd(
    source_id: Annotated[
        str | None, typer.Argument(help="Source id (see: vectorbase status).")
    ] = None,
    pending: Annotated[
        bool, typer.Option("--pending", help="Process every pending source instead of one.")
    ] = False,
    limit: Annotated[
        int, typer.Option("--limit", min=1, help="Most pending sources to process (--pending).")
    ] = PENDING_BATCH,
    max_depth: Annotated[
        int | None, typer.Option("--max-depth", help="Crawl depth override (crawl sources).")
    ] = None,
    max_pages: Annotated[
        int | None, typer.Option("--max-pages", help="Crawl page cap override (crawl sources).")
    ] = None,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Chunk, embed, and store a pending source (or all of them with --pending)."""
    if pending == (source_id is not None):
        console.print("[red]Error:[/] Give either a source id or --pending.")
        raise typer.Exit(1)

    options = ProcessingOptions(max_depth=max_depth, max_pages=max_pages)
    conn = require_db(db)
    try:
        processor = build_processor(conn, load_project_config(db), db)
        if pending:
            with console.status("Processing pending sources..."):
                reports = process_pending(processor, limit, options)
        else:
            with console.status(f"Processing {source_id}..."):
                result = processor.process(source_id, options)
    finally:
        conn.close()

    if pending:
        if not reports:
            console.print("[dim]No pending sources.[/]")
            return
        _report_batch("Pending sources", reports)
    else:
        _report(source_id, result)

def retrain_cmd(
    source_id: Annotated[str, typer.Argument(help="Source id to rebuild from scratch.")],
    force: Annotated[
        bool,
        typer.Option("--force", help="Retrain even if the source is stuck in 'processing'."),
    ] = False,
    db: DbOption = DEFAULT_DB,
) -> None:
    """Delete a source's chunks and process it again."""
    conn = require_db(db)
    try:
        processor = build_processor(conn, load_project_config(db), db)
        with console.status(f"Retraining {source_id}..."):
            result = retrain_source(processor, source_id, force=force)
    finally:
        conn.close()
    _report(source_id, result)


def auto_retrain_cmd(db: DbOption = DEFAULT_DB) -> None:
    """Retrain every auto-retrain source last refreshed more than 24h ago."""
    conn = require_db(db)
    try:
        processor = build_processor(conn, load_project_config(db), db)
        reports = auto_retrain(processor)
    finally:
        conn.close()

    if not reports:
        console.print("[dim]No sources due for retraining.[/]")
        return
    _report_batch("Auto-retrain", reports)


def recrawl_cmd(
    source_id: Annotated[str, typer.Argument(help="Website source id.")],
    link_id: Annotated[str, typer.Argument(help="Link id to re-crawl.")],
    db: DbOption = DEFAULT_DB,
) -> None:
    """Re-crawl one sitemap link, replacing only its chunks."""
    conn = require_db(db)
    try:
        processor = build_processor(conn, load_project_config(db), db)
        with console.status(f"Re-crawling {link_id}..."):
            result = recrawl_link(processor, source_id, link_id)
    finally:
        conn.close()
    _report(source_id, result)


def _report(source_id: str, result: ProcessingResult) -> None:
    if result.success:
        console.print(
            f"[green]✓[/] {source_id}: {result.chunks_created} chunks, "
            f"{result.total_tokens:,} tokens"
        )
        return
    if result.error == "Source not found":
        console.print(err_source_not_found(source_id))
    else:
        console.print(err_processing_failed(source_id, result.error))
    raise typer.Exit(1)


def _report_batch(title: str, reports: list[SourceReport]) -> None:
    table = Table(title=title, show_lines=False)
    table.add_column("Source")
    table.add_column("Name")
    table.add_column("Result")
    for report in reports:
        outcome = "[green]✓[/]" if report.success else f"[red]✗[/] {report.error}"
        table.add_row(report.source_id, report.name, outcome)
    console.print(table)

    if any(not r.success for r in reports):
        raise typer.Exit(1)
