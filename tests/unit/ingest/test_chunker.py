"""Tests for the deterministic text chunker."""

from __future__ import annotations

import pytest

from vectorbase.ingest.chunker import TextChunker, estimate_tokens

LONG_TEXT = "\n\n".join(
    " ".join(f"Sentence {p}-{s} talks about topic number {s}." for s in range(12))
    for p in range(8)
)


def test_empty_and_whitespace_input_yield_no_chunks():
    chunker = TextChunker(100, 20)
    assert chunker.split("") == []
    assert chunker.split("   \n\t  ") == []


def test_short_text_is_one_chunk_with_offsets():
    text = "  hello world  "
    chunks = TextChunker(100, 20).split(text)
    assert len(chunks) == 1
    assert chunks[0].content == "hello world"
    assert (chunks[0].start_char, chunks[0].end_char) == (2, 13)
    assert chunks[0].chunk_index == 0


def test_content_matches_offsets():
    for chunk in TextChunker(200, 50).split(LONG_TEXT):
        assert chunk.content == LONG_TEXT[chunk.start_char : chunk.end_char]


def test_chunks_respect_size_and_are_indexed_in_order():
    chunks = TextChunker(200, 50).split(LONG_TEXT)
    assert len(chunks) > 1
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    assert all(len(c.content) <= 200 for c in chunks)


def test_consecutive_chunks_overlap_and_advance():
    chunks = TextChunker(200, 50).split(LONG_TEXT)
    for prev, nxt in zip(chunks, chunks[1:]):
        assert prev.start_char < nxt.start_char
        assert nxt.start_char < prev.end_char


def test_zero_overlap_chunks_are_contiguous():
    chunks = TextChunker(200, 0).split(LONG_TEXT)
    for prev, nxt in zip(chunks, chunks[1:]):
        assert nxt.start_char == prev.end_char


def test_chunks_cover_the_whole_text():
    text = LONG_TEXT
    chunks = TextChunker(150, 30).split(text)
    assert chunks[0].start_char == 0
    assert chunks[-1].end_char == len(text)


def test_prefers_paragraph_boundary():
    text = "A" * 60 + "\n\n" + "B" * 60
    chunks = TextChunker(100, 0).split(text)
    assert chunks[0].content == "A" * 60 + "\n\n"
    assert chunks[1].content == "B" * 60


def test_falls_back_to_word_boundary():
    text = " ".join(["word"] * 50)
    chunks = TextChunker(42, 0).split(text)
    assert all(c.content.endswith(" ") for c in chunks[:-1])


def test_hard_cut_without_separators():
    text = "x" * 250
    chunks = TextChunker(100, 0).split(text)
    assert [len(c.content) for c in chunks] == [100, 100, 50]


def test_overlap_start_does_not_open_mid_word():
    text = " ".join(f"w{i:03d}" for i in range(200))
    chunks = TextChunker(100, 30).split(text)
    for chunk in chunks[1:]:
        assert text[chunk.start_char - 1] == " "
        assert chunk.content[0] == "w"


def test_deterministic():
    a = TextChunker(180, 40).split(LONG_TEXT)
    b = TextChunker(180, 40).split(LONG_TEXT)
    assert a == b


@pytest.mark.parametrize("size,overlap", [(0, 0), (100, 50), (100, 80), (100, -1)])
def test_invalid_parameters(size, overlap):
    with pytest.raises(ValueError):
        TextChunker(size, overlap)


@pytest.mark.parametrize("text,expected", [("", 0), ("abcd", 1), ("abcde", 2), ("a" * 400, 100)])
def test_estimate_tokens(text, expected):
    assert estimate_tokens(text) == expected
