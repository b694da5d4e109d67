from __future__ import annotations

import pytest

from meeting_minutes_agent.common.errors import ProviderError
from meeting_minutes_agent.domain.summary import TBD_ASSIGNEE, InterimSummary, StructuredSummary
from meeting_minutes_agent.llm.base import LLMProvider
from meeting_minutes_agent.llm.orchestrator import LLMOrchestrator
from meeting_minutes_agent.services.summarization_service import PLACEHOLDER_INSIGHTS, Summarizer


class _StaticLLM(LLMProvider):
    def __init__(self, text: str) -> None:
        self.text = text
        self.calls = 0

    def complete_text(self, *, system: str, user: str, json_mode: bool = False) -> str:
        self.calls += 1
        return self.text


class _FailingLLM(LLMProvider):
    def complete_text(self, *, system: str, user: str, json_mode: bool = False) -> str:
        raise RuntimeError("llm down")


def _summarizer(provider: LLMProvider, settings) -> Summarizer:
    return Summarizer(LLMOrchestrator(provider, settings), settings)


def test_structured_summary_defaults_and_aliases():
    summary = StructuredSummary.model_validate(
        {
            "abstract": None,
            "key_points": "not a list",
            "action_items": [{"title": "Ship", "assigned_to": None, "deadline": "null"}, "junk"],
        }
    )
    assert summary.abstract == "No summary available"
    assert summary.key_points == []
    assert len(summary.action_items) == 1
    item = summary.action_items[0]
    assert item.assignee_hint == TBD_ASSIGNEE
    assert item.deadline_hint is None
    assert summary.to_document()["action_items"][0]["assigned_to"] == TBD_ASSIGNEE


def test_interim_summary_accepts_camel_case():
    interim = InterimSummary.model_validate(
        {"keyPoints": ["a"], "decisions": ["b"], "sentiment": "ANGRY", "insights": ""}
    )
    assert interim.key_points == ["a"]
    assert interim.sentiment == "neutral"
    assert interim.model_dump(by_alias=True)["keyPoints"] == ["a"]


def test_short_text_gets_placeholder_without_llm_call(settings):
    summarizer = _summarizer(_FailingLLM(), settings)
    interim = summarizer.interim_summary("hello world", "Standup")
    assert interim.insights == PLACEHOLDER_INSIGHTS
    assert interim.key_points == []


def test_structured_summary_strips_code_fence(settings):
    provider = _StaticLLM('```json\n{"abstract": "Done", "action_items": []}\n```')
    summary = _summarizer(provider, settings).structured_summary("some text", "Standup")
    assert summary.abstract == "Done"


def test_non_object_json_is_provider_error(settings):
    with pytest.raises(ProviderError):
        _summarizer(_StaticLLM("[1, 2]"), settings).structured_summary("text", "Standup")


def test_llm_failure_after_retries_is_provider_error(settings):
    settings.llm_retries = 1
    with pytest.raises(ProviderError) as exc:
        _summarizer(_FailingLLM(), settings).structured_summary("text", "Standup")
    assert exc.value.retryable is True
