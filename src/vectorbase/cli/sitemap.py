"""vectorbase sitemap — preview a sitemap, or register its links on a source.

Usage:
  vectorbase sitemap https://example.com/sitemap.xml --include "/docs/*"
  vectorbase sitemap https://example.com --discover
  vectorbase sitemap --source <website-source-id>
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from vectorbase.cli.context import DEFAULT_DB, build_processor, load_project_config, require_db
from vectorbase.cli.errors import err_source_not_found
from vectorbase.ingest.sitemap import SitemapResolver, SitemapResult

console = Console()

_PREVIEW_ROWS = 50


def sitemap_cmd(
    url: Annotated[
        str | None, typer.Argument(help="Sitemap URL, or a site URL with --discover.")
    ] = None,
    discover: Annotated[
        bool, typer.Option("--discover", help="Locate the sitemap from the site root first.")
    ] = False,
    include: Annotated[
        list[str] | None, typer.Option("--include", help="Path pattern to include. Repeatable.")
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", help="Path pattern to exclude. Repeatable.")
    ] = None,
    max_urls: Annotated[
        int | None, typer.Option("--max-urls", help="Maximum URLs to return.")
    ] = None,
    source: Annotated[
        str | None,
        typer.Option("--source", help="Register the links on this website source instead."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
) -> None:
    """Resolve a (possibly nested) sitemap into a filtered URL list."""
    if source is not None:
        _register(source, max_urls, db)
        return
    if url is None:
        console.print("[red]Error:[/] Pass a sitemap URL or --source <id>.")
        raise typer.Exit(1)

    cfg = load_project_config(db)
    resolver = SitemapResolver(
        timeout=cfg.sitemap.timeout, discovery_timeout=cfg.sitemap.discovery_timeout
    )

    sitemap_url: str | None = url
    if discover:
        sitemap_url = resolver.discover(url)
        if sitemap_url is None:
            console.print(f"[yellow]No sitemap found for[/] {url}")
            raise typer.Exit(1)
        console.print(f"Discovered sitemap: {sitemap_url}")

    result = resolver.resolve(
        sitemap_url,
        include_paths=include or [],
        exclude_paths=exclude or [],
        max_urls=max_urls or cfg.sitemap.max_urls,
    )
    _show(result)
    if not result.urls and result.errors:
        raise typer.Exit(1)


def _register(source_id: str, max_urls: int | None, db: Path) -> None:
    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        processor = build_processor(conn, cfg, db)
        if processor.repo.get_source(source_id) is None:
            console.print(err_source_not_found(source_id))
            raise typer.Exit(1)
        try:
            added, result = processor.register_sitemap_links(
                source_id, max_urls=max_urls or cfg.sitemap.max_urls
            )
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1) from exc
    finally:
        conn.close()

    _show(result)
    console.print(f"[green]✓[/] {added} new link(s) registered on {source_id}")


def _show(result: SitemapResult) -> None:
    table = Table(title=f"{len(result.urls)} URL(s) from {result.sitemaps_processed} sitemap(s)")
    table.add_column("URL")
    table.add_column("Last modified", style="dim")
    table.add_column("Priority", justify="right")
    for entry in result.urls[:_PREVIEW_ROWS]:
        table.add_row(entry.loc, entry.lastmod or "", entry.priority or "")
    console.print(table)
    if len(result.urls) > _PREVIEW_ROWS:
        console.print(f"[dim]... and {len(result.urls) - _PREVIEW_ROWS} more[/]")
    for error in result.errors:
        console.print(f"[yellow]⚠[/]  {error.url}: {error.error}")
