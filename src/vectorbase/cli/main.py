"""VectorBase CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from vectorbase.cli.ask import ask_cmd
from vectorbase.cli.edit import edit_cmd, link_app
from vectorbase.cli.exclude import exclude_cmd
from vectorbase.cli.init import init_cmd
from vectorbase.cli.notion_auth import notion_auth_cmd
from vectorbase.cli.process import auto_retrain_cmd, process_cmd, recrawl_cmd, retrain_cmd
from vectorbase.cli.query import query_cmd
from vectorbase.cli.remove import remove_cmd
from vectorbase.cli.sitemap import sitemap_cmd
from vectorbase.cli.sources import add_app
from vectorbase.cli.status import status_cmd

# Third-party loggers that are chatty at INFO.
_NOISY_LOGGERS = ("LiteLLM", "litellm", "httpx", "httpcore", "notion_client", "trafilatura")


def _version_callback(value: bool) -> None:
    if value:
        try:
            ver = importlib.metadata.version("vectorbase")
        except importlib.metadata.PackageNotFoundError:
            ver = "dev"
        typer.echo(f"vectorbase {ver}")
        raise typer.Exit()


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich; DEBUG with --verbose, WARNING otherwise."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if verbose else logging.WARNING)


app = typer.Typer(
    name="vectorbase",
    help=(
        "VectorBase — RAG knowledge base CLI.\n\n"
        "  vectorbase add      Register a text, Q&A, website, document or Notion source.\n"
        "  vectorbase process  Chunk, embed and store a source.\n"
        "  vectorbase query    Semantic search over the knowledge base.\n"
        "  vectorbase ask      Answer a question from the knowledge base."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
) -> None:
    """VectorBase — RAG knowledge base CLI."""
    configure_logging(verbose)


app.command("init")(init_cmd)
app.add_typer(add_app, name="add")
app.command("process")(process_cmd)
app.command("retrain")(retrain_cmd)
app.command("auto-retrain")(auto_retrain_cmd)
app.command("recrawl")(recrawl_cmd)
app.command("edit")(edit_cmd)
app.add_typer(link_app, name="link")
app.command("sitemap")(sitemap_cmd)
app.command("exclude")(exclude_cmd)
app.command("notion-auth")(notion_auth_cmd)
app.command("query")(query_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("remove")(remove_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed VectorBase version."""
    try:
        ver = importlib.metadata.version("vectorbase")
    except importlib.metadata.PackageNotFoundError:
        ver = "dev"
    typer.echo(f"vectorbase {ver}")


if __name__ == "__main__":
    app()
