"""Tests for cosine vector retrieval."""

from __future__ import annotations

import pytest

from vectorbase.db.models import Source, TextPayload
from vectorbase.rag.retriever import retrieve, search

FOX = "The quick brown fox jumps over the lazy dog."
TAX = "Quarterly tax filings are due on the fifteenth."
DOG = "Dogs and foxes are both canids."


def _unit(*values: float) -> list[float]:
    return list(values) + [0.0] * (8 - len(values))


@pytest.fixture
def indexed(repo, make_processor, fake_embedder):
    """Three processed text sources in project 'proj', one fox twin elsewhere."""
    fake_embedder.vectors.update(
        {
            FOX: _unit(1.0),
            TAX: _unit(0.0, 1.0),
            DOG: _unit(0.7, 0.7),
            "fox": _unit(0.9, 0.1),
        }
    )
    processor = make_processor()
    for source_id, project, text in (
        ("fox", "proj", FOX),
        ("tax", "proj", TAX),
        ("dog", "proj", DOG),
        ("fox-elsewhere", "other", FOX),
    ):
        repo.add_source(
            Source(id=source_id, project_id=project, name=source_id, payload=TextPayload(content=text))
        )
        assert processor.process(source_id).success
    return processor


def test_search_returns_best_match_first(repo, fake_embedder, indexed):
    results = search("fox", repo, fake_embedder, "proj", threshold=0.5)

    assert [r.content for r in results] == [FOX, DOG]
    assert results[0].source_id == "fox"
    assert results[0].similarity == pytest.approx(0.9939, abs=1e-3)
    assert results[0].similarity >= results[1].similarity
    assert results[0].metadata["source_type"] == "text"


def test_search_is_scoped_to_project(repo, fake_embedder, indexed):
    other = search("fox", repo, fake_embedder, "other", threshold=0.5)
    assert [r.source_id for r in other] == ["fox-elsewhere"]
    assert search("fox", repo, fake_embedder, "missing-project", threshold=0.0) == []


def test_threshold_filters_weak_matches(repo, fake_embedder, indexed):
    loose = search("fox", repo, fake_embedder, "proj", threshold=0.0)
    assert [r.source_id for r in loose] == ["fox", "dog", "tax"]
    strict = search("fox", repo, fake_embedder, "proj", threshold=0.99)
    assert [r.source_id for r in strict] == ["fox"]


def test_top_k_is_clamped(repo, fake_embedder, indexed):
    results = search("fox", repo, fake_embedder, "proj", threshold=0.0, top_k=100, max_top_k=2)
    assert len(results) == 2
    single = search("fox", repo, fake_embedder, "proj", threshold=0.0, top_k=0)
    assert len(single) == 1


def test_empty_query_rejected(repo, fake_embedder):
    with pytest.raises(ValueError, match="must not be empty"):
        search("   ", repo, fake_embedder, "proj")
    assert fake_embedder.calls == []


def test_no_index_for_model_returns_empty(repo):
    assert retrieve(repo, _unit(1.0), "proj", "never/used-model") == []


def test_dimension_mismatch_raises(repo, indexed):
    with pytest.raises(ValueError, match="expects 8"):
        retrieve(repo, [1.0, 0.0, 0.0], "proj", "test/fake-embed")


def test_non_positive_limit_returns_empty(repo, indexed):
    assert retrieve(repo, _unit(1.0), "proj", "test/fake-embed", limit=0) == []


def test_deleted_source_no_longer_matches(repo, fake_embedder, indexed):
    repo.delete_source("fox")
    results = search("fox", repo, fake_embedder, "proj", threshold=0.5)
    assert [r.source_id for r in results] == ["dog"]
