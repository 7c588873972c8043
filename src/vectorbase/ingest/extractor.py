"""Content extractor — rendered HTML to clean title + body text.

Primary path: trafilatura's readability-style extraction (scores DOM
subtrees by text density, drops navigation/ads/footer chrome).
Fallback path: BeautifulSoup, strip chrome tags, take the first main
content container (or the whole body), collapse whitespace.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

import trafilatura
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Pages with less body text than this are "content-empty".
MIN_CONTENT_LENGTH = 50

_CHROME_SELECTORS = (
    "script",
    "style",
    "noscript",
    "nav",
    "footer",
    "header",
    "aside",
    '[role="navigation"]',
    '[role="banner"]',
    '[role="contentinfo"]',
)
_CONTENT_SELECTORS = (
    "main",
    "article",
    '[role="main"]',
    ".content",
    "#content",
    ".post",
    ".article",
)


@dataclass
class ExtractedContent:
    title: str
    content: str
    excerpt: str | None = None
    byline: str | None = None
    site_name: str | None = None

    @property
    def is_meaningful(self) -> bool:
        return len(self.content) >= MIN_CONTENT_LENGTH


def extract_content(html: str, url: str) -> ExtractedContent:
    """Extract the readable title and body of a rendered page.

    Never raises on odd markup: an unusable page comes back with empty (or
    very short) ``content``; check ``is_meaningful`` before using it.
    """
    soup = BeautifulSoup(html, "html.parser")
    page_title = _page_title(soup)

    primary = _extract_primary(html, url)
    if primary is not None and primary.content:
        if not primary.title:
            primary.title = page_title
        return primary

    logger.debug("Readability extraction found no article for %s; using fallback", url)
    return ExtractedContent(title=page_title, content=_extract_fallback(soup))


def _extract_primary(html: str, url: str) -> ExtractedContent | None:
    raw = trafilatura.extract(
        html,
        url=url,
        output_format="json",
        with_metadata=True,
        include_comments=False,
        include_links=False,
        include_tables=True,
    )
    if not raw:
        return None
    data = json.loads(raw)
    text = (data.get("text") or "").strip()
    return ExtractedContent(
        title=(data.get("title") or "").strip(),
        content=text,
        excerpt=data.get("excerpt") or data.get("description") or None,
        byline=data.get("author") or None,
        site_name=data.get("sitename") or None,
    )


def _extract_fallback(soup: BeautifulSoup) -> str:
    for selector in _CHROME_SELECTORS:
        for tag in soup.select(selector):
            tag.decompose()

    container = None
    for selector in _CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup

    return re.sub(r"\s+", " ", container.get_text(separator=" ")).strip()


def _page_title(soup: BeautifulSoup) -> str:
    if soup.title and soup.title.string:
        return soup.title.string.strip()
    h1 = soup.find("h1")
    return h1.get_text(strip=True) if h1 else ""
