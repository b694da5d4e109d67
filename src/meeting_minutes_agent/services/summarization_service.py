"""
Суммаризация транскрипта через LLM.

Назначение:
- итоговое структурированное резюме (abstract / key points / решения / action items)
- промежуточная сводка во время live-транскрипции
- ответ модели валидируется здесь; дальше ходят только типизированные записи

Вызовы синхронные (requests) - из async-кода их запускают через asyncio.to_thread.
"""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.errors import ErrCode, ProviderError
from meeting_minutes_agent.common.logging import get_llm_logger
from meeting_minutes_agent.common.metrics import track_capability_latency
from meeting_minutes_agent.domain.summary import InterimSummary, StructuredSummary
from meeting_minutes_agent.llm.orchestrator import LLMOrchestrator

log = get_llm_logger()

PLACEHOLDER_INSIGHTS = "Transcription in progress..."

# =============================================================================
# PROMPTS
# =============================================================================
STRUCTURED_SYSTEM_PROMPT = """You are a professional meeting minutes assistant. \
Analyze the meeting transcript and generate a structured summary in JSON format \
with the following structure:
{
  "abstract": "A brief 2-3 sentence overview of the meeting",
  "key_points": ["Key discussion point 1", "Key discussion point 2"],
  "decisions": ["Decision made 1"],
  "action_items": [
    {
      "title": "Action item title",
      "description": "Detailed description",
      "assigned_to": "Person name or 'TBD'",
      "deadline": "YYYY-MM-DD or null"
    }
  ]
}

Be concise but comprehensive. Extract all important information."""

INTERIM_SYSTEM_PROMPT = """You are a real-time meeting assistant. Analyze the ongoing \
meeting transcript and provide:
1. Key discussion points (top 3-5)
2. Decisions made so far
3. Overall sentiment (positive, neutral, or negative)
4. Brief insights (1-2 sentences)

Respond with a JSON object with the keys "keyPoints", "decisions", "sentiment", "insights"."""


def _structured_user_prompt(text: str, meeting_title: str) -> str:
    return (
        f"Meeting Title: {meeting_title}\n\n"
        f"Transcript:\n{text}\n\n"
        "Please analyze this transcript and generate the structured summary. "
        "Return ONLY valid JSON, no markdown formatting."
    )


def _interim_user_prompt(text: str, meeting_title: str) -> str:
    return f"Meeting: {meeting_title}\n\nCurrent Transcript:\n{text}"


class Summarizer:
    def __init__(self, llm: LLMOrchestrator, settings: Settings | None = None) -> None:
        self.llm = llm
        s = settings or get_settings()
        self.placeholder_chars = int(s.live_summary_placeholder_chars)

    def structured_summary(self, text: str, meeting_title: str = "Meeting") -> StructuredSummary:
        with track_capability_latency("llm_structured_summary"):
            data = self.llm.complete_json(
                system=STRUCTURED_SYSTEM_PROMPT,
                user=_structured_user_prompt(text, meeting_title or "Meeting"),
            )
        try:
            summary = StructuredSummary.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "Ответ LLM не соответствует схеме резюме",
                {"err": str(e)[:300]},
            ) from e
        log.info(
            "structured_summary_ready",
            extra={
                "payload": {
                    "text_len": len(text),
                    "key_points": len(summary.key_points),
                    "action_items": len(summary.action_items),
                }
            },
        )
        return summary

    def interim_summary(self, text: str, meeting_title: str = "Meeting") -> InterimSummary:
        """
        Слишком короткий текст -> заглушка без вызова модели.
        """
        if len((text or "").strip()) < self.placeholder_chars:
            return InterimSummary(insights=PLACEHOLDER_INSIGHTS)

        with track_capability_latency("llm_interim_summary"):
            data = self.llm.complete_json(
                system=INTERIM_SYSTEM_PROMPT,
                user=_interim_user_prompt(text, meeting_title or "Meeting"),
            )
        try:
            return InterimSummary.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "Ответ LLM не соответствует схеме сводки",
                {"err": str(e)[:300]},
            ) from e
