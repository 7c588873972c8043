"""Shared pytest fixtures."""

from __future__ import annotations

from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from vectorbase.db.connection import Database
from vectorbase.db.repository import Repository
from vectorbase.db.schema import initialize
from vectorbase.ingest.chunker import TextChunker
from vectorbase.ingest.embeddings import EmbeddingError
from vectorbase.ingest.extractor import ExtractedContent
from vectorbase.ingest.storage import LocalStorage
from vectorbase.processing.orchestrator import ProcessingContext, SourceProcessor


class FakeEmbedder:
    """Deterministic offline embedder.

    Texts listed in ``vectors`` get that exact vector; anything else gets a
    bag-of-letters vector (never all-zero). Set ``fail`` to raise.
    """

    def __init__(self, model: str = "test/fake-embed", dimensions: int = 8) -> None:
        self.model = model
        self.dimensions = dimensions
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[list[str]] = []
        self.fail: str | None = None

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError(self.fail)
        return [self.vectors.get(t) or self._letters(t) for t in texts]

    def _letters(self, text: str) -> list[float]:
        vec = [1.0] * self.dimensions
        for ch in text.lower():
            if ch.isalpha():
                vec[ord(ch) % self.dimensions] += 1.0
        return vec


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".vectorbase.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


# ------------------------------------------------------------------
# Offline website stand-ins
# ------------------------------------------------------------------

PAGE_BODY = "Useful documentation text that is long enough to count as real page content."


class StubBrowser:
    """Playwright-shaped browser serving ``site[url] = {"html", "links", "status"}``.

    Unknown URLs answer 404. Mutate ``site`` between calls to change answers.
    """

    def __init__(self) -> None:
        self.site: dict[str, dict] = {}
        self.visits: list[str] = []

    def new_context(self, **kwargs):
        return _StubContext(self)

    @contextmanager
    def launch(self):
        yield self


class _StubContext:
    def __init__(self, browser: StubBrowser) -> None:
        self._browser = browser

    def new_page(self):
        return _StubPage(self._browser)

    def close(self) -> None:
        pass


class _StubPage:
    def __init__(self, browser: StubBrowser) -> None:
        self._browser = browser
        self._entry: dict = {}
        self.url = ""

    def route(self, pattern, handler) -> None:
        pass

    def goto(self, url, timeout, wait_until):
        self._browser.visits.append(url)
        self.url = url
        self._entry = self._browser.site.get(url, {"status": 404})
        return SimpleNamespace(status=self._entry.get("status", 200))

    def content(self) -> str:
        return self._entry.get("html", PAGE_BODY)

    def eval_on_selector_all(self, selector, script):
        return self._entry.get("links", [])


def _stub_extract(html: str, url: str) -> ExtractedContent:
    return ExtractedContent(title=f"Page {url}", content=html)


@pytest.fixture
def stub_browser():
    """A StubBrowser with the HTML extractor replaced by a pass-through."""
    with patch("vectorbase.ingest.crawler.extract_content", side_effect=_stub_extract):
        yield StubBrowser()


@pytest.fixture
def make_processor(repo, fake_embedder, stub_browser, tmp_path):
    """Factory for a SourceProcessor wired to offline collaborators."""

    def _make(**overrides) -> SourceProcessor:
        context = ProcessingContext(
            embedder=fake_embedder,
            chunker=TextChunker(200, 40),
            browser_launcher=stub_browser.launch,
            storage=LocalStorage(tmp_path / "store"),
        )
        for name, value in overrides.items():
            setattr(context, name, value)
        return SourceProcessor(repo, context)

    return _make


@pytest.fixture(autouse=True)
def _isolated_global_config(tmp_path, monkeypatch):
    """Keep ~/.vectorbase/config.yaml and VECTORBASE_* overrides out of every test."""
    monkeypatch.setattr("vectorbase.config._GLOBAL_CONFIG_PATH", tmp_path / "global-config.yaml")
    monkeypatch.delenv("VECTORBASE_EMBEDDING_MODEL", raising=False)
    monkeypatch.delenv("VECTORBASE_PROJECT_ID", raising=False)
    monkeypatch.delenv("VECTORBASE_GENERATION_MODEL", raising=False)
