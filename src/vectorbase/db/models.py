"""Domain models for the VectorBase database layer.

A Source carries exactly one payload variant; the variant class is the tag
(``Source.type`` always agrees with it).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Union

SOURCE_TYPES = ("text", "qa", "website", "document", "notion")
SOURCE_STATUSES = ("pending", "processing", "completed", "failed")
CRAWL_TYPES = ("single", "sitemap", "crawl")
UNIT_STATUSES = ("pending", "processing", "completed", "failed")


@dataclass
class TextPayload:
    content: str


@dataclass
class QaPayload:
    question: str
    answer: str


@dataclass
class WebsitePayload:
    url: str
    crawl_type: str = "crawl"  # single | sitemap | crawl
    sitemap_url: str | None = None
    include_paths: list[str] = field(default_factory=list)
    exclude_paths: list[str] = field(default_factory=list)
    pages_crawled: int = 0
    last_crawled_at: str | None = None


@dataclass
class DocumentPayload:
    file_name: str
    file_type: str
    storage_path: str
    file_size: int = 0


@dataclass
class NotionPayload:
    access_token_encrypted: str | None
    workspace_id: str | None = None
    workspace_name: str | None = None
    sync_status: str = "pending"
    last_synced_at: str | None = None


SourcePayload = Union[TextPayload, QaPayload, WebsitePayload, DocumentPayload, NotionPayload]

_PAYLOAD_TYPES: dict[type, str] = {
    TextPayload: "text",
    QaPayload: "qa",
    WebsitePayload: "website",
    DocumentPayload: "document",
    NotionPayload: "notion",
}


def payload_type(payload: SourcePayload) -> str:
    """Return the source type tag for *payload*."""
    try:
        return _PAYLOAD_TYPES[type(payload)]
    except KeyError:
        raise TypeError(f"Unknown source payload: {type(payload).__name__}") from None


@dataclass
class Source:
    id: str
    project_id: str
    name: str
    payload: SourcePayload
    status: str = "pending"
    error_message: str | None = None
    chunks_count: int = 0
    tokens_count: int = 0
    auto_retrain: bool = False
    last_retrained_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def type(self) -> str:
        return payload_type(self.payload)


@dataclass
class WebsiteLink:
    id: str
    source_id: str
    url: str
    title: str | None = None
    content_size: int = 0
    status: str = "pending"
    is_excluded: bool = False
    error_message: str | None = None
    last_crawled_at: str | None = None


@dataclass
class NotionPage:
    id: str
    source_id: str
    notion_page_id: str
    title: str | None = None
    page_type: str = "page"  # page | database
    status: str = "pending"
    is_excluded: bool = False
    content_size: int = 0
    error_message: str | None = None
    last_synced_at: str | None = None


@dataclass
class Chunk:
    """One embedded, retrievable slice of a Source's text.

    ``embedding`` is only populated on the write path; chunks read back from
    the database leave it as None (vectors stay in the vec table).
    """

    id: str
    source_id: str
    project_id: str
    chunk_index: int
    content: str
    embedding_model: str
    tokens_count: int = 0
    metadata: str = field(default_factory=lambda: "{}")
    embedding: list[float] | None = None
    created_at: str | None = None
    rowid: int | None = None  # set after insert; None for unsaved chunks

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)
