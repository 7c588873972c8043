"""Deterministic text chunker with overlapping windows and stable char offsets.

Every chunk's ``content`` is exactly ``text[start_char:end_char]`` of the
input, so chunks can always be traced back to the source text. Windows end
on the best available boundary (paragraph, then sentence, then word) found
in the second half of the window; the next window starts ``chunk_overlap``
characters before the previous end, nudged forward to a word start.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 1000  # characters
DEFAULT_CHUNK_OVERLAP = 200  # characters

# Preferred window boundaries, best first. The separator stays with the
# chunk that ends on it.
_SEPARATORS = ("\n\n", ". ", " ")


@dataclass
class TextChunk:
    content: str
    chunk_index: int
    start_char: int
    end_char: int


def estimate_tokens(text: str) -> int:
    """Approximate token count: 4 characters ≈ 1 token (rounded up)."""
    return math.ceil(len(text) / 4)


class TextChunker:
    """Split long text into overlapping, size-bounded chunks.

    Args:
        chunk_size: Maximum chunk length in characters.
        chunk_overlap: Characters shared between consecutive chunks. Must be
            less than half of ``chunk_size`` so every window advances.
    """

    def __init__(
        self, chunk_size: int = DEFAULT_CHUNK_SIZE, chunk_overlap: int = DEFAULT_CHUNK_OVERLAP
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if chunk_overlap < 0 or (chunk_overlap > 0 and chunk_overlap * 2 >= chunk_size):
            raise ValueError("chunk_overlap must be >= 0 and less than half of chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, text: str) -> list[TextChunk]:
        """Split *text* into ordered chunks. Whitespace-only input yields []."""
        stripped = text.strip()
        if not stripped:
            return []

        lo = len(text) - len(text.lstrip())
        hi = lo + len(stripped)

        chunks: list[TextChunk] = []
        start = lo
        while start < hi:
            end = min(start + self.chunk_size, hi)
            if end < hi:
                end = self._boundary(text, start, end)

            chunks.append(
                TextChunk(
                    content=text[start:end],
                    chunk_index=len(chunks),
                    start_char=start,
                    end_char=end,
                )
            )
            if end >= hi:
                break
            start = self._next_start(text, start, end)

        return chunks

    def _boundary(self, text: str, start: int, end: int) -> int:
        """Return the best break position in (start + size/2, end]."""
        floor = start + self.chunk_size // 2
        for sep in _SEPARATORS:
            pos = text.rfind(sep, floor, end)
            if pos != -1:
                return pos + len(sep)
        return end

    def _next_start(self, text: str, start: int, end: int) -> int:
        if self.chunk_overlap == 0:
            return end
        nxt = end - self.chunk_overlap
        if nxt <= start:
            return end
        # Don't open a window mid-word.
        if not text[nxt - 1].isspace():
            for i in range(nxt, end):
                if text[i].isspace():
                    nxt = i + 1
                    break
        while nxt < end and text[nxt].isspace():
            nxt += 1
        return nxt
