"""Source processing orchestrator — the per-source state machine.

    pending ──▶ processing ──▶ completed
                    │
                    └────────▶ failed

``process()`` claims the source (status ``processing``) before any
extraction work, dispatches on the source's payload variant, chunks,
embeds, persists, and always leaves the source in ``completed`` or
``failed``. Exceptions never escape to the caller: they become
``ProcessingResult(success=False, error=...)`` plus a persisted
``error_message``.

Sitemap links and Notion pages are processed one by one. A failing link or
page is marked ``failed`` and its siblings continue; the source succeeds if
at least one of them succeeded. Embedding failures are always fatal to the
whole attempt. A failed attempt leaves the source with zero chunks.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from vectorbase.config import ENCRYPTION_KEY_ENV, VectorBaseConfig
from vectorbase.crypto import TokenCipher, TokenDecryptionError
from vectorbase.db.models import (
    Chunk,
    DocumentPayload,
    NotionPage,
    NotionPayload,
    QaPayload,
    Source,
    TextPayload,
    WebsiteLink,
    WebsitePayload,
)
from vectorbase.db.repository import Repository
from vectorbase.db.vectors import ensure_vec_table
from vectorbase.ingest.chunker import TextChunker, estimate_tokens
from vectorbase.ingest.crawler import (
    BrowserLauncher,
    CrawlOptions,
    Crawler,
    CrawlResult,
    launch_chromium,
)
from vectorbase.ingest.documents import DocumentLoadError, LoadedDocument, load_document
from vectorbase.ingest.embeddings import Embedder, EmbeddingError, LiteLLMEmbedder
from vectorbase.ingest.net import InvalidUrlError
from vectorbase.ingest.notion import NotionFetcher
from vectorbase.ingest.sitemap import SitemapResolver, SitemapResult, is_sitemap_url
from vectorbase.ingest.storage import LocalStorage, ObjectStorage

logger = logging.getLogger(__name__)

DocumentLoader = Callable[[bytes, str, str], LoadedDocument]


class NoContentError(ValueError):
    """Nothing usable was extracted (empty text, zero chunks, zero pages)."""


# Failures reported without a traceback.
_EXPECTED_FAILURES = (
    NoContentError,
    EmbeddingError,
    TokenDecryptionError,
    DocumentLoadError,
    InvalidUrlError,
)


@dataclass
class ProcessingResult:
    success: bool
    chunks_created: int = 0
    total_tokens: int = 0
    error: str | None = None


@dataclass
class ProcessingOptions:
    """Per-call overrides for BFS crawling (None = use configured default)."""

    max_depth: int | None = None
    max_pages: int | None = None


@dataclass
class ProcessingContext:
    """Collaborators threaded through the orchestrator.

    Everything with I/O or secrets lives here so tests can swap in fakes.
    """

    embedder: Embedder
    chunker: TextChunker = field(default_factory=TextChunker)
    crawl_options: CrawlOptions = field(default_factory=CrawlOptions)
    browser_launcher: BrowserLauncher = launch_chromium
    sitemap: SitemapResolver = field(default_factory=SitemapResolver)
    notion: NotionFetcher = field(default_factory=NotionFetcher)
    cipher: TokenCipher | None = None
    storage: ObjectStorage | None = None
    document_loader: DocumentLoader = load_document

    @classmethod
    def from_config(
        cls,
        cfg: VectorBaseConfig,
        project_dir: Path,
        embedder: Embedder | None = None,
        encryption_secret: str | None = None,
    ) -> ProcessingContext:
        """Build the production context from configuration.

        The token cipher is only created when *encryption_secret* is given;
        Notion sources fail with a clear message otherwise.
        """
        return cls(
            embedder=embedder
            or LiteLLMEmbedder(
                model=cfg.embedding.model,
                dimensions=cfg.embedding.dimensions,
                batch_size=cfg.embedding.batch_size,
            ),
            chunker=TextChunker(cfg.chunking.chunk_size, cfg.chunking.chunk_overlap),
            crawl_options=CrawlOptions(
                max_depth=cfg.crawler.max_depth,
                max_pages=cfg.crawler.max_pages,
                include_subdomains=cfg.crawler.include_subdomains,
                page_timeout_ms=cfg.crawler.page_timeout_ms,
                wait_for_idle=cfg.crawler.wait_for_idle,
                user_agent=cfg.crawler.user_agent,
            ),
            sitemap=SitemapResolver(
                timeout=cfg.sitemap.timeout, discovery_timeout=cfg.sitemap.discovery_timeout
            ),
            cipher=TokenCipher(encryption_secret) if encryption_secret else None,
            storage=LocalStorage(project_dir / cfg.storage.root),
        )


class SourceProcessor:
    """Runs the processing state machine for sources stored in *repo*."""

    def __init__(self, repo: Repository, context: ProcessingContext) -> None:
        self.repo = repo
        self.context = context
        self.vec_table = ensure_vec_table(
            repo.conn, context.embedder.model, context.embedder.dimensions
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def process(self, source_id: str, options: ProcessingOptions | None = None) -> ProcessingResult:
        """Process one source end to end. Never raises for pipeline failures."""
        source = self.repo.get_source(source_id)
        if source is None:
            return ProcessingResult(success=False, error="Source not found")
        if not self.repo.claim_for_processing(source_id):
            return ProcessingResult(success=False, error="Source is already being processed")

        logger.info("Processing source %s (%s, %s)", source.id, source.type, source.name)
        try:
            # Reprocessing replaces, never appends.
            self.repo.delete_chunks_by_source(source_id)
            self._dispatch(source, options or ProcessingOptions())
        except Exception as exc:
            if isinstance(exc, _EXPECTED_FAILURES):
                logger.warning("Source %s failed: %s", source_id, exc)
            else:
                logger.exception("Unexpected error while processing source %s", source_id)
            return self._fail(source, str(exc) or type(exc).__name__)
        return self._complete(source)

    def _dispatch(self, source: Source, options: ProcessingOptions) -> None:
        payload = source.payload
        if isinstance(payload, TextPayload):
            self._process_text(source, payload)
        elif isinstance(payload, QaPayload):
            self._process_qa(source, payload)
        elif isinstance(payload, WebsitePayload):
            if payload.crawl_type == "single":
                self._process_single_page(source, payload)
            elif payload.crawl_type == "sitemap":
                self._process_sitemap(source)
            else:
                self._process_crawl(source, payload, options)
        elif isinstance(payload, DocumentPayload):
            self._process_document(source, payload)
        elif isinstance(payload, NotionPayload):
            self._process_notion(source, payload)
        else:
            raise ValueError(f"Unsupported source type: {source.type}")

    def _complete(self, source: Source) -> ProcessingResult:
        chunks_count, tokens_count = self.repo.mark_source_completed(source.id)
        if source.type == "notion":
            self.repo.update_notion_sync(source.id, "completed")
        logger.info(
            "Source %s completed: %d chunks, %d tokens", source.id, chunks_count, tokens_count
        )
        return ProcessingResult(
            success=True, chunks_created=chunks_count, total_tokens=tokens_count
        )

    def _fail(self, source: Source, message: str) -> ProcessingResult:
        self.repo.delete_chunks_by_source(source.id)
        self.repo.mark_source_failed(source.id, message)
        if source.type == "notion":
            self.repo.update_notion_sync(source.id, "failed")
        return ProcessingResult(success=False, error=message)

    # ------------------------------------------------------------------
    # Chunk + embed + persist
    # ------------------------------------------------------------------

    def _store(self, source: Source, text: str, metadata: dict, empty_error: str) -> int:
        """Chunk *text*, embed it, and write all chunks in one transaction.

        Returns:
            Number of chunks written.

        Raises:
            NoContentError: if *text* yields no chunks.
            EmbeddingError: if the provider fails (nothing is written).
        """
        pieces = self.context.chunker.split(text)
        if not pieces:
            raise NoContentError(empty_error)

        embedder = self.context.embedder
        vectors = embedder.embed([p.content for p in pieces])
        if len(vectors) != len(pieces):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(pieces)} chunks."
            )

        base = {"source_name": source.name, "source_type": source.type, **metadata}
        chunks = [
            Chunk(
                id=str(uuid.uuid4()),
                source_id=source.id,
                project_id=source.project_id,
                chunk_index=piece.chunk_index,
                content=piece.content,
                embedding_model=embedder.model,
                tokens_count=estimate_tokens(piece.content),
                metadata=json.dumps(
                    {
                        **base,
                        "chunk_index": piece.chunk_index,
                        "start_char": piece.start_char,
                        "end_char": piece.end_char,
                    }
                ),
                embedding=vector,
            )
            for piece, vector in zip(pieces, vectors)
        ]
        self.repo.add_chunks(chunks, self.vec_table)
        return len(chunks)

    # ------------------------------------------------------------------
    # Text / Q&A
    # ------------------------------------------------------------------

    def _process_text(self, source: Source, payload: TextPayload) -> None:
        self._store(source, payload.content, {}, "No content to process")

    def _process_qa(self, source: Source, payload: QaPayload) -> None:
        if not (payload.question.strip() or payload.answer.strip()):
            raise NoContentError("No content to process")
        document = f"Question: {payload.question}\n\nAnswer: {payload.answer}"
        self._store(source, document, {"question": payload.question}, "No content to process")

    # ------------------------------------------------------------------
    # Websites
    # ------------------------------------------------------------------

    def _crawler(self, options: CrawlOptions | None = None) -> Crawler:
        return Crawler(options or self.context.crawl_options, launcher=self.context.browser_launcher)

    def _process_single_page(self, source: Source, payload: WebsitePayload) -> None:
        result = self._crawler().crawl_single_page(payload.url)
        if not result.pages:
            raise NoContentError(_crawl_failure("No content extracted from page", result))
        page = result.pages[0]
        document = f"# {page.title}\nSource: {page.url}\n\n{page.content}"
        self._store(source, document, {"source_url": page.url}, "No chunks created from content")
        self.repo.update_website_crawl_stats(source.id, 1)

    def _process_crawl(
        self, source: Source, payload: WebsitePayload, options: ProcessingOptions
    ) -> None:
        crawl_options = self.context.crawl_options
        if options.max_depth is not None:
            crawl_options = replace(crawl_options, max_depth=options.max_depth)
        if options.max_pages is not None:
            crawl_options = replace(crawl_options, max_pages=options.max_pages)

        result = self._crawler(crawl_options).crawl(payload.url)
        if not result.pages:
            raise NoContentError(_crawl_failure("No pages successfully crawled", result))

        document = "\n\n---\n\n".join(
            f"# {page.title}\nSource: {page.url}\n\n{page.content}" for page in result.pages
        )
        self._store(
            source,
            document,
            {"source_url": payload.url, "pages_crawled": len(result.pages)},
            "No chunks created from website content",
        )
        self.repo.update_website_crawl_stats(source.id, len(result.pages))

    def _process_sitemap(self, source: Source) -> None:
        links = self.repo.list_website_links(source.id, include_excluded=False)
        if not links:
            raise NoContentError("No links to process")

        succeeded = 0
        for link in links:
            self.repo.mark_link_processing(link.id)
            try:
                title, size = self.crawl_link(source, link)
            except EmbeddingError as exc:
                self.repo.mark_link_failed(link.id, str(exc))
                raise
            except Exception as exc:
                logger.warning("Link %s failed: %s", link.url, exc)
                self.repo.mark_link_failed(link.id, str(exc) or type(exc).__name__)
                continue
            self.repo.mark_link_completed(link.id, title, size)
            succeeded += 1

        if succeeded == 0:
            raise NoContentError("No pages successfully crawled")
        self.repo.update_website_crawl_stats(source.id, succeeded)

    def crawl_link(self, source: Source, link: WebsiteLink) -> tuple[str, int]:
        """Crawl one website link and store its chunks tagged with the link id.

        Returns:
            (page title, content size) for the link record.
        """
        result = self._crawler().crawl_single_page(link.url)
        if not result.pages:
            raise NoContentError(_crawl_failure("No content extracted", result))
        page = result.pages[0]
        document = f"# {page.title}\nSource: {page.url}\n\n{page.content}"
        self._store(
            source,
            document,
            {"source_url": link.url, "link_id": link.id},
            "No chunks created",
        )
        return page.title, len(page.content)

    def register_sitemap_links(
        self, source_id: str, max_urls: int | None = 500
    ) -> tuple[int, SitemapResult]:
        """Resolve a website source's sitemap into pending WebsiteLink rows.

        The sitemap URL comes from the source payload, else the site URL when
        it already looks like a sitemap, else discovery. Already-attached URLs
        are kept as they are.

        Returns:
            (number of links added, resolver result).
        """
        source = self.repo.get_source(source_id)
        if source is None or not isinstance(source.payload, WebsitePayload):
            raise ValueError(f"Source '{source_id}' is not a website source.")
        payload = source.payload

        sitemap_url = payload.sitemap_url
        if not sitemap_url and is_sitemap_url(payload.url):
            sitemap_url = payload.url
        if not sitemap_url:
            sitemap_url = self.context.sitemap.discover(payload.url)
        if not sitemap_url:
            raise NoContentError(f"No sitemap found for {payload.url}")

        result = self.context.sitemap.resolve(
            sitemap_url,
            include_paths=payload.include_paths,
            exclude_paths=payload.exclude_paths,
            max_urls=max_urls,
        )
        added = self.repo.add_website_links(source_id, (u.loc for u in result.urls))
        logger.info("Registered %d new link(s) for source %s", added, source_id)
        return added, result

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def _process_document(self, source: Source, payload: DocumentPayload) -> None:
        storage = self.context.storage
        if storage is None:
            raise ValueError("No document storage configured")
        try:
            data = storage.download(payload.storage_path)
        except (OSError, ValueError) as exc:
            logger.warning("Download of %s failed: %s", payload.storage_path, exc)
            raise NoContentError("Failed to download document") from exc

        loaded = self.context.document_loader(data, payload.file_name, payload.file_type)
        if not loaded.content.strip():
            raise NoContentError("No content extracted from document")

        self._store(
            source,
            loaded.content,
            {
                "file_name": payload.file_name,
                "file_type": payload.file_type,
                "page_count": loaded.page_count,
            },
            "No chunks created from document",
        )

    # ------------------------------------------------------------------
    # Notion
    # ------------------------------------------------------------------

    def _process_notion(self, source: Source, payload: NotionPayload) -> None:
        if not payload.access_token_encrypted:
            raise NoContentError("No Notion access token found")
        if self.context.cipher is None:
            raise TokenDecryptionError(
                f"Failed to decrypt Notion token: {ENCRYPTION_KEY_ENV} is not set"
            )
        try:
            token = self.context.cipher.decrypt(payload.access_token_encrypted)
        except TokenDecryptionError as exc:
            raise TokenDecryptionError("Failed to decrypt Notion token") from exc

        pages = self.repo.list_notion_pages(source.id, include_excluded=False)
        if not pages:
            raise NoContentError("No pages to process")

        self.repo.update_notion_sync(source.id, "syncing")
        succeeded = 0
        for page in pages:
            self.repo.mark_page_processing(page.id)
            try:
                title, size = self._sync_notion_page(source, page, token)
            except EmbeddingError as exc:
                self.repo.mark_page_failed(page.id, str(exc))
                raise
            except Exception as exc:
                logger.warning("Notion page %s failed: %s", page.notion_page_id, exc)
                self.repo.mark_page_failed(page.id, str(exc) or type(exc).__name__)
                continue
            self.repo.mark_page_completed(page.id, title, size)
            succeeded += 1

        if succeeded == 0:
            raise NoContentError("No pages successfully processed")

    def _sync_notion_page(self, source: Source, page: NotionPage, token: str) -> tuple[str, int]:
        content = self.context.notion.fetch(token, page.notion_page_id, page.page_type)
        if not content.content.strip():
            raise NoContentError("No content extracted")
        document = f"# {content.title}\nSource: Notion ({page.page_type})\n\n{content.content}"
        self._store(
            source,
            document,
            {
                "notion_page_id": page.notion_page_id,
                "notion_page_title": content.title,
                "page_type": page.page_type,
            },
            "No chunks created",
        )
        return content.title, len(content.content)


def _crawl_failure(message: str, result: CrawlResult) -> str:
    if result.errors:
        return f"{message}: {result.errors[0].error}"
    return message
