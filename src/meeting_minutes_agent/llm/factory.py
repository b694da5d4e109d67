"""
Выбор LLM-провайдера: LLM_ENABLED=false -> mock.
"""

from __future__ import annotations

from meeting_minutes_agent.common.config import Settings, get_settings

from .base import LLMProvider
from .mock import MockLLMProvider


def build_llm_provider(settings: Settings | None = None) -> LLMProvider:
    s = settings or get_settings()
    if not s.llm_enabled:
        return MockLLMProvider()

    from meeting_minutes_agent.llm.openai_compat import OpenAICompatProvider

    return OpenAICompatProvider()
