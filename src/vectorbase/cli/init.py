"""vectorbase init — project scaffold.

Creates:
  .vectorbase.db     — empty knowledge base with schema
  vectorbase.yaml    — project config (project, embedding, chunking, retrieval)
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from vectorbase.cli.context import open_db
from vectorbase.config import ProjectCfg, VectorBaseConfig, write_project_config
from vectorbase.db.connection import DEFAULT_DB_NAME

console = Console()

_DEFAULT_PROJECT_DIR = Path(".")


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = _DEFAULT_PROJECT_DIR,
    name: Annotated[
        str | None,
        typer.Option("--name", "-n", help="Project name. Defaults to the directory name."),
    ] = None,
) -> None:
    """Initialize a new VectorBase project."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / DEFAULT_DB_NAME
    if db_path.exists():
        console.print(f"[yellow]⚠[/]  {db_path} already exists. Existing data is preserved.")

    project_name = name or project_dir.name or "vectorbase"
    cfg = VectorBaseConfig()
    cfg.project = ProjectCfg(id=_slugify(project_name), name=project_name)

    _create_database(db_path)
    config_path = write_project_config(project_dir, cfg)

    console.print(f"[green]✓[/] Database:  {db_path}")
    console.print(f"[green]✓[/] Config:    {config_path}")
    console.print(
        "\nNext steps:\n"
        "  export OPENAI_API_KEY=sk-...\n"
        "  vectorbase add text \"My notes\" --content \"...\"\n"
        "  vectorbase process <source-id>"
    )


def _create_database(db_path: Path) -> None:
    conn = open_db(db_path)
    conn.close()


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "default"
