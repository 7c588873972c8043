"""VectorBase ingest pipeline — extraction, crawling, chunking, embedding."""

from vectorbase.ingest.chunker import TextChunk, TextChunker, estimate_tokens
from vectorbase.ingest.crawler import CrawlOptions, Crawler, CrawlResult
from vectorbase.ingest.embeddings import Embedder, EmbeddingError, LiteLLMEmbedder
from vectorbase.ingest.extractor import ExtractedContent, extract_content
from vectorbase.ingest.notion import NotionFetcher
from vectorbase.ingest.sitemap import SitemapResolver

__all__ = [
    "CrawlOptions",
    "CrawlResult",
    "Crawler",
    "Embedder",
    "EmbeddingError",
    "ExtractedContent",
    "LiteLLMEmbedder",
    "NotionFetcher",
    "SitemapResolver",
    "TextChunk",
    "TextChunker",
    "estimate_tokens",
    "extract_content",
]
