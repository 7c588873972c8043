"""VectorBase rich error messages — actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from vectorbase.cli.errors import err_no_api_key, err_no_db
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from vectorbase.config import ENCRYPTION_KEY_ENV


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
        "voyage": "VOYAGE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".vectorbase.db") -> str:
    """No .vectorbase.db found."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  vectorbase init"
    )


def err_invalid_url(url: str, reason: str) -> str:
    return (
        f"[red]Error:[/] Invalid URL '{url}': {reason}\n"
        "  Use an absolute http:// or https:// URL."
    )


def err_ssrf_blocked(url: str) -> str:
    """URL resolves to a private/reserved address."""
    return (
        f"[red]Error:[/] URL resolves to private address (SSRF protection): '{url}'\n"
        "  Use a publicly reachable URL."
    )


def err_config(message: str) -> str:
    """Config file failed to load or validate."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix vectorbase.yaml (or ~/.vectorbase/config.yaml) and retry."
    )


def err_no_encryption_key() -> str:
    """Notion tokens need the server-side encryption secret."""
    return (
        f"[red]Error:[/] {ENCRYPTION_KEY_ENV} is not set.\n"
        "  Notion access tokens are stored encrypted and need this secret.\n"
        f"  Set:  export {ENCRYPTION_KEY_ENV}=<long random secret>"
    )


def err_source_not_found(source_id: str) -> str:
    """Source not found in database."""
    return (
        f"[yellow]Source not found:[/] '{source_id}' is not in the knowledge base.\n"
        "  Run:  vectorbase status  to see all sources."
    )


def err_processing_failed(source_id: str, error: str | None) -> str:
    return (
        f"[red]Error:[/] Processing of '{source_id}' failed: {error or 'unknown error'}\n"
        "  Fix the cause and run:  vectorbase retrain " + source_id
    )
