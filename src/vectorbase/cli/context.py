"""Shared CLI plumbing: database opening, config loading, URL checks, processor wiring.

The project directory is the directory holding the database file; the
project config (vectorbase.yaml) and document storage live next to it.
"""

from __future__ import annotations

import os
import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from vectorbase.cli.errors import err_config, err_invalid_url, err_no_db, err_ssrf_blocked
from vectorbase.config import ENCRYPTION_KEY_ENV, ConfigError, VectorBaseConfig, load_config
from vectorbase.db.connection import DEFAULT_DB_NAME, Database
from vectorbase.db.repository import Repository
from vectorbase.ingest.net import FetchError, InvalidUrlError, SsrfError, check_ssrf
from vectorbase.processing.orchestrator import ProcessingContext, SourceProcessor

console = Console()

DEFAULT_DB = Path(DEFAULT_DB_NAME)


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the project database and run migrations."""
    return Database(db_path).connect(migrate=True)


def require_db(db_path: Path) -> sqlite3.Connection:
    """Open an existing database; exit with an actionable error if it is missing."""
    if not Database(db_path).exists:
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    return open_db(db_path)


def project_dir_for(db_path: Path) -> Path:
    return db_path.resolve().parent


def load_project_config(db_path: Path) -> VectorBaseConfig:
    """Load config for the project owning *db_path*; exit on invalid config."""
    try:
        return load_config(project_dir_for(db_path))
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def build_processor(conn: sqlite3.Connection, cfg: VectorBaseConfig, db_path: Path) -> SourceProcessor:
    """Wire a SourceProcessor with production collaborators."""
    context = ProcessingContext.from_config(
        cfg,
        project_dir_for(db_path),
        encryption_secret=os.environ.get(ENCRYPTION_KEY_ENV),
    )
    return SourceProcessor(Repository(conn), context)


def check_url(url: str) -> None:
    """Exit with an actionable error unless *url* is a public http(s) URL."""
    try:
        check_ssrf(url)
    except InvalidUrlError as exc:
        console.print(err_invalid_url(url, str(exc)))
        raise typer.Exit(1) from exc
    except SsrfError as exc:
        console.print(err_ssrf_blocked(url))
        raise typer.Exit(1) from exc
    except FetchError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise typer.Exit(1) from exc
