"""vectorbase ask — answer a question from the knowledge base with a chat model.

Usage:
  vectorbase ask "how long do refunds take?"
  vectorbase ask "where do orders ship from?" --model anthropic/claude-3-5-haiku-20241022
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from vectorbase.cli.context import DEFAULT_DB, load_project_config, require_db
from vectorbase.cli.errors import err_no_api_key
from vectorbase.db.repository import Repository
from vectorbase.ingest.embeddings import EmbeddingError, LiteLLMEmbedder
from vectorbase.rag.answer import AnswerError, answer

console = Console()

_SNIPPET_CHARS = 80


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer.")],
    model: Annotated[
        str | None, typer.Option("--model", "-m", help="Chat model (provider/model).")
    ] = None,
    top_k: Annotated[
        int | None, typer.Option("--top-k", "-k", min=1, help="Context chunks to retrieve.")
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=0.0, max=1.0, help="Minimum cosine similarity."),
    ] = None,
    project: Annotated[
        str | None, typer.Option("--project", "-p", help="Project id to search.")
    ] = None,
    show_sources: Annotated[
        bool, typer.Option("--sources/--no-sources", help="List the chunks used as context.")
    ] = True,
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
) -> None:
    """Answer a question grounded in the most similar chunks."""
    conn = require_db(db)
    try:
        cfg = load_project_config(db)
        generation = replace(cfg.generation, model=model) if model else cfg.generation
        embedder = LiteLLMEmbedder(
            model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
            batch_size=cfg.embedding.batch_size,
        )
        try:
            with console.status("Thinking..."):
                result = answer(
                    question,
                    Repository(conn),
                    embedder,
                    project or cfg.project.id,
                    generation,
                    threshold=cfg.retrieval.threshold if threshold is None else threshold,
                    top_k=top_k or cfg.retrieval.top_k,
                    max_top_k=cfg.retrieval.max_top_k,
                )
        except EmbeddingError as exc:
            _fail(str(exc), cfg.embedding.model)
        except AnswerError as exc:
            _fail(str(exc), generation.model)
        except ValueError as exc:
            console.print(f"[red]Error:[/] {exc}")
            raise typer.Exit(1) from exc
    finally:
        conn.close()

    console.print(Markdown(result.text))
    if not show_sources:
        return
    if not result.sources:
        console.print("[dim]No matching chunks; answered without context.[/]")
        return

    table = Table(title="Sources", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Similarity", justify="right")
    table.add_column("Source")
    table.add_column("Excerpt")
    for rank, source in enumerate(result.sources, start=1):
        meta = source.metadata
        origin = meta.get("source_url") or meta.get("file_name") or meta.get("source_name", "")
        excerpt = source.content[:_SNIPPET_CHARS] + ("…" if len(source.content) > _SNIPPET_CHARS else "")
        table.add_row(str(rank), f"{source.similarity:.3f}", origin or source.source_id, excerpt)
    console.print(table)


def _fail(message: str, model: str) -> NoReturn:
    if "API key" in message:
        console.print(err_no_api_key(model.split("/")[0]))
    else:
        console.print(f"[red]Error:[/] {message}")
    raise typer.Exit(1)
