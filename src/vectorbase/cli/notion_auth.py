"""vectorbase notion-auth — print the Notion OAuth authorize URL.

Open the URL, approve the integration, then pass the ``code`` query
parameter Notion redirects with to ``vectorbase add notion --code``.
"""

from __future__ import annotations

import secrets
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vectorbase.cli.context import DEFAULT_DB, load_project_config
from vectorbase.ingest.notion import CLIENT_ID_ENV, notion_auth_url

console = Console()


def notion_auth_cmd(
    client_id: Annotated[
        str | None,
        typer.Option("--client-id", envvar=CLIENT_ID_ENV, help="Notion OAuth client id."),
    ] = None,
    db: Annotated[Path, typer.Option("--db", help="Path to .vectorbase.db.")] = DEFAULT_DB,
) -> None:
    """Print the URL that starts the Notion OAuth flow."""
    if not client_id:
        console.print(f"[red]Error:[/] No Notion client id. Set:  export {CLIENT_ID_ENV}=...")
        raise typer.Exit(1)
    cfg = load_project_config(db)
    state = secrets.token_urlsafe(16)
    # Plain echo so the URL is never wrapped.
    typer.echo(notion_auth_url(state, cfg.notion.redirect_uri, client_id=client_id))
