"""Sitemap resolver — expands sitemap indexes into a flat, filtered URL list.

No browser is involved: sitemaps and robots.txt are fetched over plain HTTP
(see vectorbase.ingest.net). Nested sitemaps are drained through a single
de-duplicated work queue; one failing sitemap is recorded and its siblings
are still resolved.
"""

from __future__ import annotations

import logging
import re
import urllib.parse
import warnings
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from vectorbase.ingest.net import FetchError, FetchResult, fetch

logger = logging.getLogger(__name__)

_XML_ACCEPT = "application/xml, text/xml, */*"
_COMMON_SITEMAP_PATHS = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/sitemaps/sitemap.xml",
    "/sitemap/sitemap.xml",
)
_ROBOTS_SITEMAP_RE = re.compile(r"^\s*Sitemap:\s*(\S+)", re.IGNORECASE | re.MULTILINE)

Fetcher = Callable[..., FetchResult]


@dataclass
class SitemapUrl:
    loc: str
    lastmod: str | None = None
    changefreq: str | None = None
    priority: str | None = None


@dataclass
class SitemapError:
    url: str
    error: str


@dataclass
class SitemapResult:
    urls: list[SitemapUrl] = field(default_factory=list)
    errors: list[SitemapError] = field(default_factory=list)
    sitemaps_processed: int = 0


# ------------------------------------------------------------------
# Parsing + filtering
# ------------------------------------------------------------------


def parse_sitemap(xml: str) -> tuple[list[SitemapUrl], list[str]]:
    """Parse one sitemap document.

    Returns:
        (urls, nested_sitemaps). A sitemap index yields nested sitemap URLs
        and no page URLs; a regular sitemap yields page URLs only.
    """
    # html.parser tolerates broken XML; silence bs4's XML-as-HTML notice for this call only.
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(xml, "html.parser")

    nested: list[str] = []
    for entry in soup.find_all("sitemap"):
        loc = entry.find("loc")
        if loc is not None and loc.get_text(strip=True):
            nested.append(loc.get_text(strip=True))
    if nested:
        return [], nested

    urls: list[SitemapUrl] = []
    for entry in soup.find_all("url"):
        loc = entry.find("loc")
        if loc is None or not loc.get_text(strip=True):
            continue
        urls.append(
            SitemapUrl(
                loc=loc.get_text(strip=True),
                lastmod=_child_text(entry, "lastmod"),
                changefreq=_child_text(entry, "changefreq"),
                priority=_child_text(entry, "priority"),
            )
        )
    return urls, []


def _child_text(entry, name: str) -> str | None:
    tag = entry.find(name)
    if tag is None:
        return None
    return tag.get_text(strip=True) or None


def matches_pattern(url: str, pattern: str) -> bool:
    """Glob-style path match: ``*`` spans any characters within one path segment.

    The pattern is anchored at the start of the URL path (a leading ``/`` is
    optional), so ``blog/*`` matches ``/blog/post-1`` but not ``/news/blog/x``.
    """
    try:
        path = urllib.parse.urlparse(url).path
    except ValueError:
        return False
    regex = re.escape(pattern.lstrip("/")).replace(r"\*", "[^/]*")
    return re.match(f"^/?{regex}", path, re.IGNORECASE) is not None


def filter_urls(
    urls: list[SitemapUrl],
    include_paths: list[str] | None = None,
    exclude_paths: list[str] | None = None,
    max_urls: int | None = None,
) -> list[SitemapUrl]:
    """Apply include/exclude path filters, de-duplicate by loc, then trim to *max_urls*."""
    include_paths = include_paths or []
    exclude_paths = exclude_paths or []

    kept: list[SitemapUrl] = []
    seen: set[str] = set()
    for entry in urls:
        if include_paths and not any(matches_pattern(entry.loc, p) for p in include_paths):
            continue
        if any(matches_pattern(entry.loc, p) for p in exclude_paths):
            continue
        if entry.loc in seen:
            continue
        seen.add(entry.loc)
        kept.append(entry)

    if max_urls and max_urls > 0:
        kept = kept[:max_urls]
    return kept


def is_sitemap_url(url: str) -> bool:
    """Heuristic: does *url* look like a sitemap (``*.xml`` or ``sitemap`` in the path)?"""
    try:
        path = urllib.parse.urlparse(url).path.lower()
    except ValueError:
        return False
    return path.endswith(".xml") or "sitemap" in path


# ------------------------------------------------------------------
# Resolver
# ------------------------------------------------------------------


class SitemapResolver:
    """Fetch and recursively expand sitemaps.

    Args:
        fetcher: HTTP fetch function (vectorbase.ingest.net.fetch signature).
        timeout: Per-sitemap request timeout in seconds.
        discovery_timeout: Timeout per candidate URL in ``discover()``.
    """

    def __init__(
        self, fetcher: Fetcher = fetch, timeout: float = 30, discovery_timeout: float = 10
    ) -> None:
        self._fetch = fetcher
        self.timeout = timeout
        self.discovery_timeout = discovery_timeout

    def resolve(
        self,
        sitemap_url: str,
        include_paths: list[str] | None = None,
        exclude_paths: list[str] | None = None,
        max_urls: int | None = None,
    ) -> SitemapResult:
        """Expand *sitemap_url* into a flat, filtered, de-duplicated URL list.

        Filters run after the queue is drained. With *max_urls* set, draining
        stops early once twice that many (unfiltered) URLs are collected.
        """
        result = SitemapResult()
        collected: list[SitemapUrl] = []
        processed: set[str] = set()
        pending: deque[str] = deque([sitemap_url])

        while pending:
            current = pending.popleft()
            if current in processed:
                continue
            processed.add(current)

            logger.debug("Fetching sitemap %s", current)
            try:
                response = self._fetch(current, timeout=self.timeout, accept=_XML_ACCEPT)
            except (FetchError, ValueError) as exc:
                logger.warning("Sitemap fetch failed for %s: %s", current, exc)
                result.errors.append(SitemapError(url=current, error=str(exc)))
                continue

            urls, nested = parse_sitemap(response.text)
            result.sitemaps_processed += 1
            pending.extend(u for u in nested if u not in processed)
            collected.extend(urls)

            if max_urls and len(collected) >= max_urls * 2:
                break

        result.urls = filter_urls(collected, include_paths, exclude_paths, max_urls)
        logger.info(
            "Found %d URLs from %d sitemap(s) (%d error(s))",
            len(result.urls),
            result.sitemaps_processed,
            len(result.errors),
        )
        return result

    def discover(self, website_url: str) -> str | None:
        """Find a site's sitemap by probing well-known paths, then robots.txt.

        Returns:
            The sitemap URL, or None when nothing was found.
        """
        parsed = urllib.parse.urlparse(website_url)
        base = f"{parsed.scheme}://{parsed.netloc}"

        for path in _COMMON_SITEMAP_PATHS:
            candidate = f"{base}{path}"
            try:
                response = self._fetch(candidate, timeout=self.discovery_timeout, method="HEAD")
            except (FetchError, ValueError) as exc:
                logger.debug("Sitemap candidate %s failed: %s", candidate, exc)
                continue
            if "xml" in response.content_type or "text/plain" in response.content_type:
                return candidate

        try:
            robots = self._fetch(f"{base}/robots.txt", timeout=self.discovery_timeout)
        except (FetchError, ValueError) as exc:
            logger.debug("robots.txt fetch failed for %s: %s", base, exc)
            return None
        match = _ROBOTS_SITEMAP_RE.search(robots.text)
        return match.group(1).strip() if match else None
