from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any, TypeVar

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.errors import ErrCode, ProviderError
from meeting_minutes_agent.common.logging import get_llm_logger

from .base import LLMProvider

log = get_llm_logger()

T = TypeVar("T")


def _strip_code_fence(text: str) -> str:
    raw = (text or "").strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else ""
        if raw.rstrip().endswith("```"):
            raw = raw.rstrip()[:-3]
    return raw.strip()


class LLMOrchestrator:
    """Оркестратор вызовов LLM: ретраи, разбор JSON, единая обработка ошибок.

    Здесь нет логики провайдера, только orchestration.
    """

    def __init__(self, provider: LLMProvider, settings: Settings | None = None) -> None:
        self.provider = provider
        s = settings or get_settings()
        self.retries = max(0, int(s.llm_retries))
        self.backoff_ms = max(0, int(s.llm_retry_backoff_ms))

    def _retry(self, fn: Callable[..., T], **kwargs: Any) -> T:
        last_err: Exception | None = None
        for attempt in range(self.retries + 1):
            try:
                return fn(**kwargs)
            except Exception as e:
                last_err = e
                log.warning(
                    "llm_attempt_failed",
                    extra={"payload": {"attempt": attempt + 1, "err": str(e)[:200]}},
                )
                if attempt >= self.retries:
                    break
                time.sleep(self.backoff_ms / 1000.0)

        raise ProviderError(
            ErrCode.LLM_PROVIDER_ERROR,
            "LLM не ответил после ретраев",
            {"err": str(last_err)[:200]},
        ) from last_err

    def complete_text(self, *, system: str, user: str) -> str:
        return self._retry(self.provider.complete_text, system=system, user=user)

    def complete_json(self, *, system: str, user: str) -> dict:
        """Возвращает распарсенный JSON-объект (dict)."""
        text = self._retry(self.provider.complete_text, system=system, user=user, json_mode=True)
        try:
            data = json.loads(_strip_code_fence(text))
        except ValueError as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "LLM вернул невалидный JSON",
                {"err": str(e), "text_head": (text or "")[:500]},
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "LLM вернул JSON не-объект",
                {"text_head": (text or "")[:500]},
            )
        return data
