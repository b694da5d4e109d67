"""
Базовый интерфейс STT (Speech-to-Text).

Назначение:
- единый контракт для всех провайдеров
- провайдер получает целый аудио-блоб (чанк live-сессии или загруженный файл)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass
class STTResult:
    text: str
    confidence: float | None = None


class STTProvider(Protocol):
    def transcribe(self, *, audio: bytes, mime_type: str | None = None) -> STTResult: ...
