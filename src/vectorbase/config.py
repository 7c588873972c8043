"""VectorBase configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site — not in this module)
  2. Environment variables  (VECTORBASE_EMBEDDING_MODEL, VECTORBASE_PROJECT_ID)
  3. Per-project vectorbase.yaml  (next to .vectorbase.db)
  4. Global ~/.vectorbase/config.yaml  (defaults only — no secrets)
  5. Hardcoded defaults

Secrets (provider API keys, VECTORBASE_ENCRYPTION_KEY, NOTION_CLIENT_SECRET)
are read from the environment only; the global config is rejected if it
contains anything that looks like one.
All YAML reads use yaml.safe_load() — never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".vectorbase"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "vectorbase.yaml"

ENCRYPTION_KEY_ENV = "VECTORBASE_ENCRYPTION_KEY"

# Matches api_key, api-key, api_secret, *_token, token, *_secret, secret,
# password, passwd, credential(s). Does NOT match max_tokens or top_k.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|encryption[_\-]?key"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "project",
        "embedding",
        "chunking",
        "crawler",
        "sitemap",
        "retrieval",
        "generation",
        "storage",
        "notion",
    ]
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ProjectCfg:
    """Project scope (vectorbase.yaml: project:)."""

    id: str = "default"
    name: str = ""


@dataclass
class EmbeddingCfg:
    """Embedding provider configuration (vectorbase.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536
    batch_size: int = 2048


@dataclass
class ChunkingCfg:
    """Chunk window, in characters (vectorbase.yaml: chunking:)."""

    chunk_size: int = 1000
    chunk_overlap: int = 200


@dataclass
class CrawlerCfg:
    """Headless crawl limits (vectorbase.yaml: crawler:)."""

    max_depth: int = 2
    max_pages: int = 10
    page_timeout_ms: int = 30_000
    wait_for_idle: bool = True
    include_subdomains: bool = True
    user_agent: str = "VectorBase-Crawler/1.0 (AI Knowledge Base; +https://vectorbase.dev)"


@dataclass
class SitemapCfg:
    """Sitemap resolution limits (vectorbase.yaml: sitemap:)."""

    max_urls: int = 500
    timeout: int = 30
    discovery_timeout: int = 10


@dataclass
class RetrievalCfg:
    """Vector query defaults (vectorbase.yaml: retrieval:)."""

    threshold: float = 0.5
    top_k: int = 5
    max_top_k: int = 20


@dataclass
class GenerationCfg:
    """Chat model used by `vectorbase ask` (vectorbase.yaml: generation:).

    An empty system_prompt means the built-in grounded-answer prompt.
    """

    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1000
    system_prompt: str = ""


@dataclass
class StorageCfg:
    """Local object storage for uploaded documents (vectorbase.yaml: storage:)."""

    root: str = ".vectorbase-storage"


@dataclass
class NotionCfg:
    """Notion OAuth settings (vectorbase.yaml: notion:).

    Client id and secret are secrets and come from NOTION_CLIENT_ID /
    NOTION_CLIENT_SECRET; only the redirect URI lives in config.
    """

    redirect_uri: str = "http://localhost:3000/api/notion/callback"


@dataclass
class VectorBaseConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    project: ProjectCfg = field(default_factory=ProjectCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    crawler: CrawlerCfg = field(default_factory=CrawlerCfg)
    sitemap: SitemapCfg = field(default_factory=SitemapCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    storage: StorageCfg = field(default_factory=StorageCfg)
    notion: NotionCfg = field(default_factory=NotionCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any secret-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Secrets must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: VectorBaseConfig) -> None:
    """Raise ConfigError for values the pipeline cannot run with."""
    ch = cfg.chunking
    if ch.chunk_size < 1:
        raise ConfigError(f"chunking.chunk_size must be >= 1, got {ch.chunk_size}")
    if ch.chunk_overlap < 0 or ch.chunk_overlap * 2 >= ch.chunk_size:
        raise ConfigError(
            f"chunking.chunk_overlap must be in [0, chunk_size / 2), got {ch.chunk_overlap}"
        )
    if cfg.embedding.dimensions < 1 or cfg.embedding.batch_size < 1:
        raise ConfigError("embedding.dimensions and embedding.batch_size must be >= 1")
    if cfg.crawler.max_depth < 0 or cfg.crawler.max_pages < 1:
        raise ConfigError("crawler.max_depth must be >= 0 and crawler.max_pages >= 1")
    if not 0.0 <= cfg.retrieval.threshold <= 1.0:
        raise ConfigError(
            f"retrieval.threshold must be in [0, 1], got {cfg.retrieval.threshold}"
        )
    if cfg.retrieval.top_k < 1 or cfg.retrieval.max_top_k < 1:
        raise ConfigError("retrieval.top_k and retrieval.max_top_k must be >= 1")
    if not 0.0 <= cfg.generation.temperature <= 2.0:
        raise ConfigError(
            f"generation.temperature must be in [0, 2], got {cfg.generation.temperature}"
        )
    if cfg.generation.max_tokens < 1:
        raise ConfigError("generation.max_tokens must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> VectorBaseConfig:
    """Build a *VectorBaseConfig* from a merged raw YAML dict."""
    cfg = VectorBaseConfig()

    if "project" in data:
        p = data["project"] or {}
        cfg.project = ProjectCfg(
            id=str(p.get("id", cfg.project.id)),
            name=str(p.get("name", cfg.project.name)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            batch_size=int(e.get("batch_size", cfg.embedding.batch_size)),
        )

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            chunk_overlap=int(c.get("chunk_overlap", cfg.chunking.chunk_overlap)),
        )

    if "crawler" in data:
        cr = data["crawler"] or {}
        cfg.crawler = CrawlerCfg(
            max_depth=int(cr.get("max_depth", cfg.crawler.max_depth)),
            max_pages=int(cr.get("max_pages", cfg.crawler.max_pages)),
            page_timeout_ms=int(cr.get("page_timeout_ms", cfg.crawler.page_timeout_ms)),
            wait_for_idle=bool(cr.get("wait_for_idle", cfg.crawler.wait_for_idle)),
            include_subdomains=bool(
                cr.get("include_subdomains", cfg.crawler.include_subdomains)
            ),
            user_agent=str(cr.get("user_agent", cfg.crawler.user_agent)),
        )

    if "sitemap" in data:
        s = data["sitemap"] or {}
        cfg.sitemap = SitemapCfg(
            max_urls=int(s.get("max_urls", cfg.sitemap.max_urls)),
            timeout=int(s.get("timeout", cfg.sitemap.timeout)),
            discovery_timeout=int(s.get("discovery_timeout", cfg.sitemap.discovery_timeout)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            threshold=float(r.get("threshold", cfg.retrieval.threshold)),
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            max_top_k=int(r.get("max_top_k", cfg.retrieval.max_top_k)),
        )

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            system_prompt=str(g.get("system_prompt") or cfg.generation.system_prompt),
        )

    if "storage" in data:
        st = data["storage"] or {}
        cfg.storage = StorageCfg(root=str(st.get("root", cfg.storage.root)))

    if "notion" in data:
        n = data["notion"] or {}
        cfg.notion = NotionCfg(
            redirect_uri=str(n.get("redirect_uri", cfg.notion.redirect_uri))
        )

    return cfg


def _apply_env_overrides(cfg: VectorBaseConfig) -> VectorBaseConfig:
    """Apply VECTORBASE_* environment variable overrides (layer 2)."""
    if model := os.environ.get("VECTORBASE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("VECTORBASE_GENERATION_MODEL"):
        cfg.generation.model = model
    if project_id := os.environ.get("VECTORBASE_PROJECT_ID"):
        cfg.project.id = project_id
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> VectorBaseConfig:
    """Load and return a merged *VectorBaseConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *vectorbase.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains secret-like fields or a value
            fails validation.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def encryption_key() -> str:
    """Return the server-side token encryption secret.

    Raises:
        ConfigError: If VECTORBASE_ENCRYPTION_KEY is not set.
    """
    key = os.environ.get(ENCRYPTION_KEY_ENV)
    if not key:
        raise ConfigError(
            f"{ENCRYPTION_KEY_ENV} is not set. Notion tokens cannot be encrypted or decrypted.\n"
            f"  Set:  export {ENCRYPTION_KEY_ENV}=<long random secret>"
        )
    return key


def write_project_config(project_dir: Path, cfg: VectorBaseConfig | None = None) -> Path:
    """Write a starter ``vectorbase.yaml`` into *project_dir* if none exists.

    Returns the path of the (existing or new) file.
    """
    cfg = cfg or VectorBaseConfig()
    target = project_dir / _PROJECT_CONFIG_NAME
    if target.exists():
        return target

    content = (
        "# VectorBase project configuration.\n"
        "# NEVER store secrets here — use environment variables:\n"
        "#   export OPENAI_API_KEY=sk-...\n"
        f"#   export {ENCRYPTION_KEY_ENV}=...\n"
        "\n"
        + yaml.safe_dump(
            {
                "project": {"id": cfg.project.id, "name": cfg.project.name},
                "embedding": {
                    "model": cfg.embedding.model,
                    "dimensions": cfg.embedding.dimensions,
                },
                "chunking": {
                    "chunk_size": cfg.chunking.chunk_size,
                    "chunk_overlap": cfg.chunking.chunk_overlap,
                },
                "retrieval": {
                    "threshold": cfg.retrieval.threshold,
                    "top_k": cfg.retrieval.top_k,
                },
            },
            sort_keys=False,
        )
    )
    target.write_text(content, encoding="utf-8")
    return target
