"""Breadth-first website crawler driven by a headless Chromium (Playwright).

One browser per crawl, one isolated browser context per page fetch. The
context is closed unconditionally after each fetch so a hung or crashed
page cannot leak state into its siblings.

Per-page failures (timeouts, HTTP errors, empty pages) are recorded and
skipped; only an invalid start URL aborts the crawl.
"""

from __future__ import annotations

import logging
import time
import urllib.parse
from collections import deque
from collections.abc import Callable
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Iterator

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from vectorbase.ingest.extractor import extract_content
from vectorbase.ingest.net import USER_AGENT, validate_url

logger = logging.getLogger(__name__)

_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
_BLOCKED_RESOURCE_TYPES = {"image", "media", "font", "stylesheet"}
_VIEWPORT = {"width": 1280, "height": 720}

_SKIP_EXTENSIONS = (
    ".pdf", ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico",
    ".css", ".js", ".zip", ".tar", ".gz",
    ".mp4", ".mp3", ".wav", ".avi", ".mov",
)
_SKIP_PATH_SEGMENTS = (
    "/login", "/logout", "/signup", "/register", "/cart", "/checkout",
    "/admin", "/wp-admin", "/api/", "/auth/",
)

# A launcher yields a live browser (playwright.sync_api.Browser or a test
# double exposing ``new_context``) and shuts it down on exit.
BrowserLauncher = Callable[[], AbstractContextManager[Any]]


@contextmanager
def launch_chromium(headless: bool = True) -> Iterator[Any]:
    """Start Playwright, launch headless Chromium, and tear both down on exit."""
    with sync_playwright() as pw:
        browser = pw.chromium.launch(headless=headless, args=_BROWSER_ARGS)
        try:
            yield browser
        finally:
            browser.close()


class PageFetchError(RuntimeError):
    """A single page could not be fetched or yielded no usable content."""


@dataclass
class CrawlOptions:
    max_depth: int = 2  # 0 = start page only
    max_pages: int = 10
    same_domain_only: bool = True
    include_subdomains: bool = True
    page_timeout_ms: int = 30_000
    wait_for_idle: bool = True
    user_agent: str = USER_AGENT


@dataclass
class CrawledPage:
    url: str
    title: str
    content: str
    depth: int
    links: list[str] = field(default_factory=list)
    excerpt: str | None = None


@dataclass
class CrawlError:
    url: str
    error: str


@dataclass
class CrawlStats:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    elapsed_seconds: float = 0.0


@dataclass
class CrawlResult:
    pages: list[CrawledPage]
    errors: list[CrawlError]
    stats: CrawlStats


# ------------------------------------------------------------------
# URL helpers
# ------------------------------------------------------------------


def normalize_url(url: str) -> str:
    """Drop the fragment and collapse a trailing slash (except on the root path)."""
    parsed = urllib.parse.urlparse(url)
    path = parsed.path
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return urllib.parse.urlunparse(parsed._replace(path=path, fragment=""))


def root_domain(hostname: str) -> str:
    """Return the registrable-ish root of *hostname* (its last two labels)."""
    labels = hostname.lower().split(".")
    return ".".join(labels[-2:])


def is_content_url(url: str) -> bool:
    """True unless the URL is non-http(s) or points at a known non-content resource."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return False
    path = parsed.path.lower()
    if path.endswith(_SKIP_EXTENSIONS):
        return False
    return not any(segment in path for segment in _SKIP_PATH_SEGMENTS)


# ------------------------------------------------------------------
# Crawler
# ------------------------------------------------------------------


class Crawler:
    """BFS crawler. State (queue + visited set) lives only inside one ``crawl()`` call.

    Args:
        options: Crawl bounds and page-fetch settings.
        launcher: Browser launcher; defaults to headless Chromium.
    """

    def __init__(
        self, options: CrawlOptions | None = None, launcher: BrowserLauncher = launch_chromium
    ) -> None:
        self.options = options or CrawlOptions()
        self._launcher = launcher

    def crawl(self, start_url: str) -> CrawlResult:
        """Crawl from *start_url* breadth-first within the configured bounds.

        Raises:
            InvalidUrlError: if *start_url* is not an absolute http(s) URL.
        """
        start_parsed = validate_url(start_url)
        opts = self.options
        started = time.monotonic()

        start = normalize_url(start_url)
        queue: deque[tuple[str, int]] = deque([(start, 0)])
        visited = {start}
        pages: list[CrawledPage] = []
        errors: list[CrawlError] = []
        attempted = 0

        with self._launcher() as browser:
            while queue and len(pages) < opts.max_pages:
                url, depth = queue.popleft()
                attempted += 1
                logger.info("Crawling (depth=%d): %s", depth, url)
                try:
                    page = self._fetch_page(browser, url, depth)
                except (PlaywrightError, PageFetchError) as exc:
                    logger.warning("Failed to crawl %s: %s", url, exc)
                    errors.append(CrawlError(url=url, error=str(exc)))
                    continue

                pages.append(page)
                if depth >= opts.max_depth:
                    continue
                for link in page.links:
                    if len(visited) >= opts.max_pages * 2:
                        break
                    candidate = normalize_url(link)
                    if candidate in visited or not self._is_eligible(candidate, start_parsed):
                        continue
                    visited.add(candidate)
                    queue.append((candidate, depth + 1))

        stats = CrawlStats(
            attempted=attempted,
            succeeded=len(pages),
            failed=len(errors),
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info(
            "Crawl of %s finished: %d ok, %d failed in %.1fs",
            start_url,
            stats.succeeded,
            stats.failed,
            stats.elapsed_seconds,
        )
        return CrawlResult(pages=pages, errors=errors, stats=stats)

    def _is_eligible(self, url: str, start: urllib.parse.ParseResult) -> bool:
        if not is_content_url(url):
            return False
        if not self.options.same_domain_only:
            return True
        host = urllib.parse.urlparse(url).hostname or ""
        if self.options.include_subdomains:
            return root_domain(host) == root_domain(start.hostname or "")
        return host == (start.hostname or "").lower()

    def _fetch_page(self, browser: Any, url: str, depth: int) -> CrawledPage:
        opts = self.options
        context = browser.new_context(
            user_agent=opts.user_agent,
            viewport=_VIEWPORT,
            ignore_https_errors=True,
        )
        try:
            page = context.new_page()
            page.route("**/*", _block_heavy_resources)
            response = page.goto(
                url,
                timeout=opts.page_timeout_ms,
                wait_until="networkidle" if opts.wait_for_idle else "domcontentloaded",
            )
            if response is None:
                raise PageFetchError("No response received")
            if response.status >= 400:
                raise PageFetchError(f"HTTP {response.status}")

            final_url = page.url or url
            html = page.content()
            hrefs = page.eval_on_selector_all(
                "a[href]", "els => els.map(el => el.getAttribute('href'))"
            )
        finally:
            context.close()

        try:
            extracted = extract_content(html, final_url)
        except Exception as exc:
            raise PageFetchError(f"Content extraction failed: {exc}") from exc
        if not extracted.is_meaningful:
            raise PageFetchError("No meaningful content extracted")

        return CrawledPage(
            url=url,
            title=extracted.title or url,
            content=extracted.content,
            depth=depth,
            links=_absolute_links(hrefs or [], final_url),
            excerpt=extracted.excerpt,
        )

    def crawl_single_page(self, url: str) -> CrawlResult:
        """Fetch exactly one page (depth 0, at most one result)."""
        single = Crawler(replace(self.options, max_depth=0, max_pages=1), launcher=self._launcher)
        return single.crawl(url)


def _block_heavy_resources(route: Any) -> None:
    if route.request.resource_type in _BLOCKED_RESOURCE_TYPES:
        route.abort()
    else:
        route.continue_()


def _absolute_links(hrefs: list[str], base_url: str) -> list[str]:
    """Resolve hrefs against the page URL, keeping http(s) links in document order."""
    links: list[str] = []
    seen: set[str] = set()
    for href in hrefs:
        if not href:
            continue
        try:
            absolute = urllib.parse.urljoin(base_url, href.strip())
        except ValueError:
            continue
        if urllib.parse.urlparse(absolute).scheme not in ("http", "https"):
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links
