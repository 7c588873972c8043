"""Tests for grounded answers over retrieved chunks."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from vectorbase.config import GenerationCfg
from vectorbase.db.models import Source, TextPayload
from vectorbase.rag.answer import (
    DEFAULT_SYSTEM_PROMPT,
    AnswerError,
    answer,
    build_messages,
)
from vectorbase.rag.retriever import RetrievalResult

REFUNDS = "Refunds are issued within 30 days of purchase."
SHIPPING = "Orders ship from our Berlin warehouse."
COMPLETION = "vectorbase.rag.answer.litellm.completion"


def _unit(*values: float) -> list[float]:
    return list(values) + [0.0] * (8 - len(values))


def _reply(text: str, prompt_tokens: int = 42, completion_tokens: int = 7):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


@pytest.fixture(autouse=True)
def _offline(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    with patch(
        "vectorbase.rag.answer.litellm.token_counter",
        side_effect=lambda model, text: len(text.split()),
    ):
        yield


@pytest.fixture
def indexed(repo, make_processor, fake_embedder):
    fake_embedder.vectors.update(
        {REFUNDS: _unit(1.0), SHIPPING: _unit(0.0, 1.0), "refund policy?": _unit(0.95, 0.05)}
    )
    processor = make_processor()
    for source_id, text in (("refunds", REFUNDS), ("shipping", SHIPPING)):
        repo.add_source(
            Source(id=source_id, project_id="proj", name=source_id, payload=TextPayload(content=text))
        )
        assert processor.process(source_id).success
    return processor


def test_answer_grounds_prompt_in_retrieved_chunks(repo, fake_embedder, indexed):
    with patch(COMPLETION, return_value=_reply(" Within 30 days. ")) as completion:
        result = answer("refund policy?", repo, fake_embedder, "proj", threshold=0.5)

    assert result.text == "Within 30 days."
    assert [s.source_id for s in result.sources] == ["refunds"]
    assert (result.prompt_tokens, result.completion_tokens) == (42, 7)

    kwargs = completion.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert (kwargs["temperature"], kwargs["max_tokens"]) == (0.7, 1000)
    system, user = kwargs["messages"]
    assert system["content"].startswith(DEFAULT_SYSTEM_PROMPT)
    assert f"[1] {REFUNDS}" in system["content"]
    assert "Berlin" not in system["content"]
    assert user == {"role": "user", "content": "refund policy?"}


def test_answer_without_matches_uses_bare_prompt(repo, fake_embedder, indexed):
    with patch(COMPLETION, return_value=_reply("I don't know.")) as completion:
        result = answer("refund policy?", repo, fake_embedder, "other-project")

    assert result.sources == []
    system, _ = completion.call_args.kwargs["messages"]
    assert system["content"] == DEFAULT_SYSTEM_PROMPT


def test_answer_uses_configured_model_and_prompt(repo, fake_embedder, indexed, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    cfg = GenerationCfg(model="ollama/llama3", temperature=0.0, max_tokens=50, system_prompt="Be terse.")
    with patch(COMPLETION, return_value=_reply("30 days")) as completion:
        result = answer("refund policy?", repo, fake_embedder, "proj", cfg)

    assert result.model == "ollama/llama3"
    kwargs = completion.call_args.kwargs
    assert (kwargs["model"], kwargs["max_tokens"]) == ("ollama/llama3", 50)
    assert kwargs["messages"][0]["content"].startswith("Be terse.")


def test_context_budget_drops_lower_ranked_chunks(repo, fake_embedder, indexed):
    with patch(COMPLETION, return_value=_reply("ok")):
        result = answer(
            "refund policy?", repo, fake_embedder, "proj", threshold=0.0, context_budget=10
        )
    assert [s.source_id for s in result.sources] == ["refunds"]


def test_completion_failure_raises(repo, fake_embedder, indexed):
    with patch(COMPLETION, side_effect=RuntimeError("503 upstream")):
        with pytest.raises(AnswerError, match="503 upstream"):
            answer("refund policy?", repo, fake_embedder, "proj")


def test_empty_completion_raises(repo, fake_embedder, indexed):
    with patch(COMPLETION, return_value=_reply("  ")):
        with pytest.raises(AnswerError, match="empty answer"):
            answer("refund policy?", repo, fake_embedder, "proj")


def test_missing_api_key_fails_before_retrieval(repo, fake_embedder, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY")
    with patch(COMPLETION) as completion:
        with pytest.raises(AnswerError, match="OPENAI_API_KEY"):
            answer("refund policy?", repo, fake_embedder, "proj")
    completion.assert_not_called()
    assert fake_embedder.calls == []


def test_build_messages_numbers_context():
    results = [
        RetrievalResult(id="a", content="first", similarity=0.9, source_id="s"),
        RetrievalResult(id="b", content="second", similarity=0.8, source_id="s"),
    ]
    system, user = build_messages("q", results, "Prompt.")
    assert system["content"] == "Prompt.\n\n---\nContext:\n[1] first\n\n[2] second\n---"
    assert user["content"] == "q"
