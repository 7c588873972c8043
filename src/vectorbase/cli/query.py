"""vectorbase query — semantic search over embedded chunks.

Usage:
  vectorbase query "how do refunds work?" --top-k 3 --threshold 0.6
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

from vectorbase.cli.context import DEFAULT_DB, load_project_config, require_db
from vectorbase.cli.errors import err_no_api_key
from vectorbase.db.repository import Repository
from vectorbase.ingest.embeddings import EmbeddingError, LiteLLMEmbedder
from vectorbase.rag.retriever import search

console = Console()

_PREVIEW_CHARS = 400


def query_cmd(
    text: Annotated[str, typer.Argument(help="Natural-language query.")],
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=0.0, max=1.0, help="Minimum cosine similarity."),
    ] = None,
    top_k: Annotated[
        int | None, typer.Option("--top-k", "-k", min=1, help="Maximum results.")
    ] = None,
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Project id to search.")
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
) -> None:
    """Find the chunks most similar to a query."""
    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        embedder = LiteLLMEmbedder(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
        )
        try:
            results = search(
                text,
                Repository(conn),
                embedder,
                project or cfg.project.id,
                threshold=cfg.retrieval.threshold if threshold is None else threshold,
                top_k=top_k or cfg.retrieval.top_k,
                max_top_k=cfg.retrieval.max_top_k,
            )
        except EmbeddingError as exc:
            if "API key" in str(exc):
                console.print(err_no_api_key(cfg.embedding.model.split("/")[0]))
            else:
                console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1) from exc
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1) from exc
    finally:
        conn.close()

    if not results:
        console.print("[dim]No matching chunks.[/]")
        return

    for rank, result in enumerate(results, start=1):
        meta = result.metadata
        origin = meta.get("source_url") or meta.get("file_name") or meta.get("source_name", "")
        body = result.content
        if len(body) > _PREVIEW_CHARS:
            body = body[:_PREVIEW_CHARS] + "…"
        console.print(
            Panel(
                body,
                title=f"[bold]{rank}[/]  similarity {result.similarity:.3f}",
                subtitle=f"[dim]{origin}[/]",
                expand=False,
            )
        )
