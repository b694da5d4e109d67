"""
Разовая транскрипция загруженного аудио-файла.

Отличие от live-пути:
- сбой STT здесь фатален: транскрипт помечается failed, ошибка уходит клиенту
"""

from __future__ import annotations

import asyncio

from meeting_minutes_agent.common.errors import BadInputError, ErrCode, NotFoundError, ProviderError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.metrics import record_capability_failure, track_capability_latency
from meeting_minutes_agent.contracts.http_api import TranscriptOut
from meeting_minutes_agent.domain.enums import ProcessingStatus
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.repositories import MeetingRepository, TranscriptRepository
from meeting_minutes_agent.stt.base import STTProvider

log = get_project_logger()


class TranscriptionService:
    def __init__(self, *, session_scope: SessionScope, stt: STTProvider) -> None:
        self.session_scope = session_scope
        self.stt = stt

    async def transcribe_upload(
        self, meeting_id: int, audio: bytes, mime_type: str | None = None
    ) -> TranscriptOut:
        if not audio:
            raise BadInputError("Аудио-файл пуст", {"meeting_id": meeting_id})

        await asyncio.to_thread(self._mark_processing, meeting_id, mime_type)
        log.info(
            "upload_transcription_started",
            extra={"meeting_id": meeting_id, "payload": {"bytes": len(audio), "mime": mime_type}},
        )

        try:
            with track_capability_latency("stt_upload"):
                result = await asyncio.to_thread(
                    self.stt.transcribe, audio=audio, mime_type=mime_type
                )
        except Exception as e:
            record_capability_failure(capability="stt", path="upload")
            log.error(
                "upload_transcription_failed",
                extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
            )
            await asyncio.to_thread(self._write, meeting_id, None, ProcessingStatus.failed)
            if isinstance(e, ProviderError):
                raise
            raise ProviderError(
                ErrCode.STT_PROVIDER_ERROR, "Ошибка распознавания речи", {"err": str(e)[:200]}
            ) from e

        out = await asyncio.to_thread(
            self._write, meeting_id, (result.text or "").strip(), ProcessingStatus.completed
        )
        log.info(
            "upload_transcription_done",
            extra={"meeting_id": meeting_id, "payload": {"chars": len(out.raw_text)}},
        )
        return out

    def _mark_processing(self, meeting_id: int, mime_type: str | None) -> None:
        with self.session_scope() as s:
            if MeetingRepository(s).get(meeting_id) is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            tr = TranscriptRepository(s).get_or_create(meeting_id)
            tr.processing_status = ProcessingStatus.processing
            if mime_type:
                tr.audio_mime_type = mime_type

    def _write(
        self, meeting_id: int, text: str | None, status: ProcessingStatus
    ) -> TranscriptOut:
        with self.session_scope() as s:
            tr = TranscriptRepository(s).get_or_create(meeting_id)
            if text is not None:
                tr.raw_text = text
            tr.processing_status = status
            s.flush()
            return TranscriptOut.model_validate(tr)
