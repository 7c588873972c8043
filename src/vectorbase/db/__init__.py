"""VectorBase persistence: sources, sitemap links, Notion pages, chunks and vectors."""

from vectorbase.db.connection import DEFAULT_DB_NAME, Database
from vectorbase.db.models import Chunk, NotionPage, Source, SourcePayload, WebsiteLink
from vectorbase.db.repository import Repository
from vectorbase.db.schema import initialize
from vectorbase.db.vectors import ensure_vec_table, vec_table_name

__all__ = [
    "DEFAULT_DB_NAME",
    "Chunk",
    "Database",
    "NotionPage",
    "Repository",
    "Source",
    "SourcePayload",
    "WebsiteLink",
    "ensure_vec_table",
    "initialize",
    "vec_table_name",
]
