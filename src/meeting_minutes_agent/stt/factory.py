"""
Выбор STT-провайдера по STT_PROVIDER.
"""

from __future__ import annotations

from meeting_minutes_agent.common.config import Settings, get_settings

from .base import STTProvider
from .mock import MockSTTProvider


def build_stt_provider(settings: Settings | None = None) -> STTProvider:
    s = settings or get_settings()
    provider = (s.stt_provider or "").strip().lower()

    if provider == "mock":
        return MockSTTProvider()
    if provider == "whisper_local":
        # тяжёлые зависимости (faster-whisper, av) грузим только по требованию
        from meeting_minutes_agent.stt.whisper_local import WhisperLocalProvider

        return WhisperLocalProvider(
            model_size=s.whisper_model_size,
            device=s.whisper_device,
            compute_type=s.whisper_compute_type,
            language=s.stt_language,
            vad_filter=s.whisper_vad_filter,
            beam_size=s.whisper_beam_size,
        )

    from meeting_minutes_agent.stt.openai_whisper import OpenAIWhisperProvider

    return OpenAIWhisperProvider()
