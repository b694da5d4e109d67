from __future__ import annotations

from meeting_minutes_agent.stt.base import STTProvider, STTResult


class MockSTTProvider(STTProvider):
    """Заглушка STT: возвращает предсказуемый текст для проверки пайплайна end-to-end."""

    def transcribe(self, *, audio: bytes, mime_type: str | None = None) -> STTResult:
        return STTResult(text=f"mock_transcript bytes={len(audio)} mime={mime_type or 'unknown'}")
