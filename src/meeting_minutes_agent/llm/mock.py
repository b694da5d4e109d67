"""
Mock LLM для тестов и dev.

Назначение:
- Быстро гонять пайплайн без реальных вызовов LLM
- Предсказуемый результат
"""

from __future__ import annotations

import json

from .base import LLMProvider


class MockLLMProvider(LLMProvider):
    def complete_text(self, *, system: str, user: str, json_mode: bool = False) -> str:
        if "keyPoints" in system:
            payload: dict = {
                "keyPoints": ["mock_point"],
                "decisions": [],
                "sentiment": "neutral",
                "insights": "mock_insights",
            }
        else:
            payload = {
                "abstract": "mock_summary",
                "key_points": ["mock_point_1", "mock_point_2"],
                "decisions": [],
                "action_items": [],
            }
        return json.dumps(payload, ensure_ascii=False)
