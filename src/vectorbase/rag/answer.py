"""Grounded answers: retrieved chunks become numbered context for a chat model (LiteLLM).

Pipeline:
  1. Retrieve the chunks most similar to the question (retriever.search).
  2. Keep chunks best-first until the context token budget is spent.
  3. Number them [1]..[n] and append them to the system prompt.
  4. One litellm.completion() call; the reply and the chunks it was
     given come back as an Answer.

With no matching chunks the model is still asked, with the bare system
prompt, so it can say the knowledge base does not cover the question.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

import litellm

from vectorbase.config import GenerationCfg
from vectorbase.db.repository import Repository
from vectorbase.ingest.embeddings import Embedder
from vectorbase.rag.retriever import (
    DEFAULT_THRESHOLD,
    DEFAULT_TOP_K,
    MAX_TOP_K,
    RetrievalResult,
    search,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Answer questions based on the provided context. "
    "If you cannot find the answer in the context, say so politely. "
    "Always be accurate and cite information from the context when possible."
)
CONTEXT_TOKEN_BUDGET = 8_192

# Provider → env var holding its key; None means no key is needed.
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,
    "ollama_chat": None,
}


class AnswerError(RuntimeError):
    """The chat model could not be reached or returned nothing usable."""


@dataclass
class Answer:
    text: str
    model: str
    sources: list[RetrievalResult] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0


def answer(
    question: str,
    repo: Repository,
    embedder: Embedder,
    project_id: str,
    generation: GenerationCfg | None = None,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    top_k: int = DEFAULT_TOP_K,
    max_top_k: int = MAX_TOP_K,
    context_budget: int = CONTEXT_TOKEN_BUDGET,
) -> Answer:
    """Answer *question* from the project's knowledge base.

    Raises:
        ValueError: *question* is blank, or the index has other dimensions.
        EmbeddingError: the question could not be embedded.
        AnswerError: the chat model is unavailable or its call failed.
    """
    generation = generation or GenerationCfg()
    _check_api_key(generation.model)

    results = search(
        question,
        repo,
        embedder,
        project_id,
        threshold=threshold,
        top_k=top_k,
        max_top_k=max_top_k,
    )
    results = _apply_token_budget(results, generation.model, context_budget)
    logger.info("Answering with %d context chunk(s) via %s", len(results), generation.model)

    messages = build_messages(question, results, generation.system_prompt or DEFAULT_SYSTEM_PROMPT)
    try:
        response = litellm.completion(
            model=generation.model,
            messages=messages,
            max_tokens=generation.max_tokens,
            temperature=generation.temperature,
            num_retries=3,
        )
    except Exception as exc:
        raise AnswerError(f"Completion request failed ({generation.model}): {exc}") from exc

    text = (response.choices[0].message.content or "").strip()
    if not text:
        raise AnswerError(f"{generation.model} returned an empty answer.")
    usage = getattr(response, "usage", None)
    return Answer(
        text=text,
        model=generation.model,
        sources=results,
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
    )


def build_messages(
    question: str,
    results: list[RetrievalResult],
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> list[dict]:
    """System prompt with numbered context appended, then the user question."""
    context = "\n\n".join(f"[{i}] {r.content}" for i, r in enumerate(results, start=1))
    if context:
        system_prompt = f"{system_prompt}\n\n---\nContext:\n{context}\n---"
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": question},
    ]


def count_tokens(model: str, text: str) -> int:
    """Provider-aware token count; ~4 chars per token when LiteLLM cannot count."""
    try:
        return litellm.token_counter(model=model, text=text)
    except Exception:
        return max(1, len(text) // 4)


def _apply_token_budget(
    results: list[RetrievalResult], model: str, budget: int
) -> list[RetrievalResult]:
    selected: list[RetrievalResult] = []
    total = 0
    for result in results:
        tokens = count_tokens(model, result.content)
        if total + tokens > budget:
            break
        selected.append(result)
        total += tokens
    return selected


def _check_api_key(model: str) -> None:
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)
    if env_var and not os.environ.get(env_var):
        raise AnswerError(
            f"No API key found for provider '{provider}'. Set the {env_var} environment variable."
        )
