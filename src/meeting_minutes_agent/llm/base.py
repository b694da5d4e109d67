"""
Базовые типы для LLM.

Назначение:
- единый контракт провайдера: complete_text(system=..., user=...) -> str
- оркестратор (ретраи, JSON) поверх любого провайдера
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class LLMProvider(ABC):
    """
    Интерфейс провайдера LLM.
    """

    @abstractmethod
    def complete_text(self, *, system: str, user: str, json_mode: bool = False) -> str:
        """
        Вернуть текст ответа модели.
        """
        raise NotImplementedError
