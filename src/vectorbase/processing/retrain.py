"""Batch processing of pending sources, retrain, scheduled auto-retrain, single-link recrawl.

Retrain is not incremental: all chunks go, per-link/per-page statuses
return to ``pending``, and the source is processed from scratch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from vectorbase.db.models import WebsitePayload
from vectorbase.processing.orchestrator import (
    ProcessingOptions,
    ProcessingResult,
    SourceProcessor,
)

logger = logging.getLogger(__name__)

AUTO_RETRAIN_INTERVAL = timedelta(hours=24)
AUTO_RETRAIN_BATCH = 50
PENDING_BATCH = 10
_AUTO_RETRAIN_TYPES = ("website", "notion")


@dataclass
class SourceReport:
    source_id: str
    name: str
    success: bool
    error: str | None = None


def process_pending(
    processor: SourceProcessor,
    limit: int = PENDING_BATCH,
    options: ProcessingOptions | None = None,
) -> list[SourceReport]:
    """Process up to *limit* ``pending`` sources, oldest first.

    One failing source does not stop the batch; each gets its own report.
    """
    reports: list[SourceReport] = []
    for source in processor.repo.list_sources_by_status("pending", limit):
        result = processor.process(source.id, options)
        if not result.success:
            logger.warning("Processing of %s failed: %s", source.id, result.error)
        reports.append(
            SourceReport(
                source_id=source.id, name=source.name, success=result.success, error=result.error
            )
        )
    logger.info(
        "Processed %d pending source(s), %d failed",
        len(reports),
        sum(1 for r in reports if not r.success),
    )
    return reports


def retrain_source(
    processor: SourceProcessor,
    source_id: str,
    *,
    force: bool = False,
    options: ProcessingOptions | None = None,
) -> ProcessingResult:
    """Discard a source's chunks and reprocess it.

    A source currently in ``processing`` is refused unless *force* is set
    (recovery for a source stuck after a crash).
    """
    repo = processor.repo
    source = repo.get_source(source_id)
    if source is None:
        return ProcessingResult(success=False, error="Source not found")
    if source.status == "processing" and not force:
        return ProcessingResult(success=False, error="Source is already being processed")

    logger.info("Retraining source %s (%s)", source.id, source.name)
    repo.delete_chunks_by_source(source_id)
    if source.type == "website":
        repo.reset_website_links(source_id)
    elif source.type == "notion":
        repo.reset_notion_pages(source_id)
    repo.reset_source(source_id)

    result = processor.process(source_id, options)
    if result.success:
        repo.mark_source_retrained(source_id)
    return result


def auto_retrain(
    processor: SourceProcessor,
    now: datetime | None = None,
    limit: int = AUTO_RETRAIN_BATCH,
) -> list[SourceReport]:
    """Retrain every due auto-retrain source (website/Notion, completed, >24h old)."""
    now = now or datetime.now(timezone.utc)
    # SQLite datetime('now') stamps are UTC "YYYY-MM-DD HH:MM:SS".
    cutoff_at = now.astimezone(timezone.utc) - AUTO_RETRAIN_INTERVAL
    cutoff = cutoff_at.strftime("%Y-%m-%d %H:%M:%S")

    reports: list[SourceReport] = []
    for source in processor.repo.list_auto_retrain_candidates(cutoff, limit):
        if source.type not in _AUTO_RETRAIN_TYPES:
            continue
        result = retrain_source(processor, source.id)
        if not result.success:
            logger.warning("Auto-retrain of %s failed: %s", source.id, result.error)
        reports.append(
            SourceReport(
                source_id=source.id, name=source.name, success=result.success, error=result.error
            )
        )
    return reports


def recrawl_link(processor: SourceProcessor, source_id: str, link_id: str) -> ProcessingResult:
    """Re-crawl one WebsiteLink, replacing only that link's chunks.

    The source's counts are recomputed afterwards. A successful recrawl
    leaves the source ``completed``.
    """
    repo = processor.repo
    source = repo.get_source(source_id)
    if source is None or not isinstance(source.payload, WebsitePayload):
        return ProcessingResult(success=False, error="Website source not found")
    if source.status == "processing":
        return ProcessingResult(success=False, error="Source is already being processed")
    link = repo.get_website_link(link_id)
    if link is None or link.source_id != source_id:
        return ProcessingResult(success=False, error="Link not found")

    repo.mark_link_processing(link_id)
    repo.delete_chunks_by_link(source_id, link_id)
    try:
        title, size = processor.crawl_link(source, link)
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        logger.warning("Recrawl of %s failed: %s", link.url, message)
        repo.mark_link_failed(link_id, message)
        _refresh_pages_crawled(processor, source_id)
        repo.refresh_source_counts(source_id)
        return ProcessingResult(success=False, error=message)

    repo.mark_link_completed(link_id, title, size)
    _refresh_pages_crawled(processor, source_id)
    chunks_count, tokens_count = repo.mark_source_completed(source_id)
    return ProcessingResult(success=True, chunks_created=chunks_count, total_tokens=tokens_count)


def _refresh_pages_crawled(processor: SourceProcessor, source_id: str) -> None:
    links = processor.repo.list_website_links(source_id, include_excluded=False)
    completed = sum(1 for link in links if link.status == "completed")
    processor.repo.update_website_crawl_stats(source_id, completed)
