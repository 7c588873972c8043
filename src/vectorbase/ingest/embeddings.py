"""Embedding batcher — ordered texts in, equally-ordered vectors out (LiteLLM).

Inputs are sent in batches of at most ``batch_size``. Provider responses
are re-sorted by their ``index`` field, so vector i always belongs to text
i. Any batch failure raises EmbeddingError; nothing is returned for a
partially embedded input.
"""

from __future__ import annotations

import logging
import os
from typing import Protocol

import litellm

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openai/text-embedding-3-small"
DEFAULT_DIMENSIONS = 1536
DEFAULT_BATCH_SIZE = 2048  # OpenAI per-request input cap

_PROVIDER_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


class EmbeddingError(RuntimeError):
    """Raised when the embedding provider fails or returns a malformed response."""


class Embedder(Protocol):
    model: str
    dimensions: int

    def embed(self, texts: list[str]) -> list[list[float]]: ...


class LiteLLMEmbedder:
    """Embedder backed by ``litellm.embedding()``.

    Args:
        model: LiteLLM model string (``provider/model``).
        dimensions: Expected vector length; also requested from the provider.
        batch_size: Maximum number of texts per provider call.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        self._check_api_key()

        vectors: list[list[float]] = []
        for offset in range(0, len(texts), self.batch_size):
            batch = texts[offset : offset + self.batch_size]
            logger.debug(
                "Embedding batch %d-%d of %d with %s",
                offset,
                offset + len(batch) - 1,
                len(texts),
                self.model,
            )
            vectors.extend(self._embed_batch(batch))
        return vectors

    def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            response = litellm.embedding(
                model=self.model,
                input=batch,
                dimensions=self.dimensions,
                num_retries=3,
            )
        except Exception as exc:
            raise EmbeddingError(f"Embedding request failed ({self.model}): {exc}") from exc

        items = sorted(response.data, key=lambda item: item["index"])
        if len(items) != len(batch):
            raise EmbeddingError(
                f"Embedding provider returned {len(items)} vectors for {len(batch)} inputs."
            )
        vectors = [list(item["embedding"]) for item in items]
        for vector in vectors:
            if len(vector) != self.dimensions:
                raise EmbeddingError(
                    f"Expected {self.dimensions}-dim vectors from {self.model}, got {len(vector)}."
                )
        return vectors

    def _check_api_key(self) -> None:
        """Raise EmbeddingError if no API key is available for the embedding model."""
        provider = self.model.split("/")[0].lower() if "/" in self.model else ""
        required_env = _PROVIDER_KEY_ENV.get(provider)
        if required_env and not os.environ.get(required_env):
            raise EmbeddingError(
                f"No API key found for provider '{provider}'. "
                f"Set the {required_env} environment variable."
            )
