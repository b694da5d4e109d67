"""
Локальный STT на базе faster-whisper.

Что делает:
- принимает bytes аудио (webm/ogg/wav/mp3 - что угодно, что понимает ffmpeg)
- декодирует через PyAV в моно float32 16kHz
- запускает Whisper модель локально
"""

from __future__ import annotations

import io

import av  # PyAV (ffmpeg bindings)
import numpy as np
from faster_whisper import WhisperModel

from meeting_minutes_agent.common.config import get_settings

from .base import STTProvider, STTResult


def _decode_audio_to_float32(audio_bytes: bytes, target_sr: int = 16000) -> np.ndarray:
    """
    Декодирует произвольный аудио-контейнер/кодек в моно float32 16kHz.
    """
    container = av.open(io.BytesIO(audio_bytes))
    stream = next(s for s in container.streams if s.type == "audio")
    resampler = av.audio.resampler.AudioResampler(format="fltp", layout="mono", rate=target_sr)

    samples: list[np.ndarray] = []
    for frame in container.decode(stream):
        for out in resampler.resample(frame):
            arr = out.to_ndarray()
            if arr.ndim == 2:
                arr = arr[0]
            samples.append(arr.astype(np.float32))

    if not samples:
        return np.zeros((0,), dtype=np.float32)

    return np.concatenate(samples)


class WhisperLocalProvider(STTProvider):
    def __init__(
        self,
        model_size: str | None = None,
        device: str | None = None,
        compute_type: str | None = None,
        language: str | None = None,
        vad_filter: bool | None = None,
        beam_size: int | None = None,
    ) -> None:
        s = get_settings()

        self.model = WhisperModel(
            model_size or s.whisper_model_size,
            device=device or s.whisper_device,
            compute_type=compute_type or s.whisper_compute_type,
        )

        self.language = language or s.stt_language
        self.vad_filter = s.whisper_vad_filter if vad_filter is None else vad_filter
        self.beam_size = beam_size or s.whisper_beam_size

    def transcribe(self, *, audio: bytes, mime_type: str | None = None) -> STTResult:
        wav = _decode_audio_to_float32(audio, target_sr=16000)
        if wav.size == 0:
            return STTResult(text="", confidence=None)

        segments, _info = self.model.transcribe(
            wav,
            language=self.language,
            vad_filter=self.vad_filter,
            beam_size=self.beam_size,
        )

        text = " ".join(seg.text.strip() for seg in segments if seg.text and seg.text.strip())
        return STTResult(text=text.strip(), confidence=None)
