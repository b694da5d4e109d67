"""
STT через OpenAI-compatible endpoint /audio/transcriptions.

Назначение:
- multipart-загрузка аудио-блоба
- ошибки HTTP/таймауты -> ProviderError(STT_PROVIDER_ERROR)
"""

from __future__ import annotations

import requests

from meeting_minutes_agent.common.config import get_settings
from meeting_minutes_agent.common.errors import ErrCode, ProviderError
from meeting_minutes_agent.common.logging import get_project_logger

from .base import STTProvider, STTResult

log = get_project_logger()

_EXT_BY_MIME = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
}


def _filename_for(mime_type: str | None) -> str:
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    return f"audio.{_EXT_BY_MIME.get(base, 'webm')}"


class OpenAIWhisperProvider(STTProvider):
    def __init__(
        self,
        *,
        api_base: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        language: str | None = None,
        timeout_s: int | None = None,
    ) -> None:
        s = get_settings()
        self.api_base = (api_base or s.openai_api_base or "").rstrip("/")
        self.api_key = api_key or s.openai_api_key or ""
        self.model = model or s.stt_model_id
        self.language = language or s.stt_language
        self.timeout_s = int(timeout_s or s.stt_request_timeout_sec)

        if not self.api_base:
            raise ProviderError(ErrCode.STT_PROVIDER_ERROR, "OPENAI_API_BASE не задан")
        if not self.api_key:
            raise ProviderError(ErrCode.STT_PROVIDER_ERROR, "OPENAI_API_KEY не задан")

    def transcribe(self, *, audio: bytes, mime_type: str | None = None) -> STTResult:
        url = self.api_base + "/audio/transcriptions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        files = {"file": (_filename_for(mime_type), audio, mime_type or "audio/webm")}
        data = {"model": self.model, "language": self.language, "response_format": "json"}

        try:
            resp = requests.post(url, headers=headers, files=files, data=data, timeout=self.timeout_s)
        except requests.RequestException as e:
            log.error("stt_http_error", extra={"payload": {"err": str(e)[:200]}})
            raise ProviderError(
                ErrCode.STT_PROVIDER_ERROR,
                "Ошибка HTTP при вызове STT",
                {"err": str(e)[:200]},
            ) from e

        if resp.status_code >= 400:
            raise ProviderError(
                ErrCode.STT_PROVIDER_ERROR,
                "STT вернул ошибку",
                {"status": resp.status_code, "text_head": resp.text[:500]},
            )

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProviderError(
                ErrCode.STT_PROVIDER_ERROR,
                "STT вернул невалидный JSON",
                {"text_head": resp.text[:500]},
            ) from e

        text = payload.get("text") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise ProviderError(
                ErrCode.STT_PROVIDER_ERROR,
                "В ответе STT нет текста",
                {"data_head": str(payload)[:500]},
            )
        return STTResult(text=text.strip(), confidence=None)
