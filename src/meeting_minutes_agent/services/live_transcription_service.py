"""
Live-транскрипция: реестр активных сессий.

Назначение:
- start / ingest_chunk / stop / status по meeting_id
- накопление текста чанков строго в порядке поступления (даже если STT
  по более раннему чанку отвечает дольше)
- промежуточные сводки (interim summary) по политике времени/объёма
- фоновая запись буфера в Transcript (fire-and-forget, ошибки только в лог)

Что теряется при рестарте процесса:
- незаписанный хвост буфера; Transcript в БД остаётся источником истины,
  повторный start подхватывает сохранённый raw_text
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.errors import (
    AlreadyActiveError,
    InvalidStateError,
    PersistenceError,
    SessionNotFoundError,
)
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.metrics import (
    LIVE_CHUNKS_TOTAL,
    LIVE_SESSIONS_ACTIVE,
    record_capability_failure,
    track_capability_latency,
)
from meeting_minutes_agent.common.time import Clock, utc_now
from meeting_minutes_agent.contracts.ws_events import TRANSCRIPT_INCREMENT
from meeting_minutes_agent.domain.enums import MeetingStatus, ProcessingStatus
from meeting_minutes_agent.domain.summary import InterimSummary
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.repositories import TranscriptRepository
from meeting_minutes_agent.stt.base import STTProvider

from .background import BackgroundRunner
from .broadcast import Broadcaster
from .meeting_status_service import MeetingStatusService
from .summarization_service import Summarizer

log = get_project_logger()


# =============================================================================
# РЕЗУЛЬТАТЫ
# =============================================================================
@dataclass
class LiveStartResult:
    meeting_id: int
    transcript_id: int
    status: str = "started"


@dataclass
class ChunkResult:
    transcribed: str
    summary: InterimSummary | None
    accumulated_length: int


@dataclass
class LiveStopResult:
    meeting_id: int
    transcript_id: int
    final_length: int
    meeting_status: MeetingStatus


@dataclass
class LiveStatus:
    is_active: bool
    transcript_id: int | None = None
    accumulated_length: int = 0
    started_at: datetime | None = None
    last_update: datetime | None = None


# =============================================================================
# СЕССИЯ
# =============================================================================
@dataclass
class _LiveSession:
    meeting_id: int
    transcript_id: int
    meeting_title: str
    text: str
    started_at: datetime
    last_update: datetime
    last_summary_at: datetime | None = None

    # билеты: порядок добавления текста = порядок поступления чанков
    next_ticket: int = 0
    next_turn: int = 0
    turn: asyncio.Condition = field(default_factory=asyncio.Condition)

    flush_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    flush_pending: bool = False
    closed: bool = False

    def take_ticket(self) -> int:
        ticket = self.next_ticket
        self.next_ticket += 1
        return ticket

    def append(self, text: str) -> bool:
        piece = (text or "").strip()
        if not piece:
            return False
        self.text = f"{self.text} {piece}" if self.text else piece
        return True


# =============================================================================
# РЕЕСТР
# =============================================================================
class LiveTranscriptionRegistry:
    def __init__(
        self,
        *,
        session_scope: SessionScope,
        stt: STTProvider,
        summarizer: Summarizer,
        status_service: MeetingStatusService,
        broadcaster: Broadcaster,
        background: BackgroundRunner,
        clock: Clock = utc_now,
        settings: Settings | None = None,
    ) -> None:
        s = settings or get_settings()
        self.session_scope = session_scope
        self.stt = stt
        self.summarizer = summarizer
        self.status_service = status_service
        self.broadcaster = broadcaster
        self.background = background
        self.clock = clock
        self.summary_interval = timedelta(seconds=int(s.live_summary_interval_sec))
        self.summary_min_chars = int(s.live_summary_min_chars)

        self._sessions: dict[int, _LiveSession] = {}
        self._starting: set[int] = set()
        self._stopping: set[int] = set()

    def is_active(self, meeting_id: int) -> bool:
        return meeting_id in self._sessions

    # =========================================================================
    # START
    # =========================================================================
    async def start(self, meeting_id: int, *, actor_id: int | None = None) -> LiveStartResult:
        # слот резервируется до первого await: параллельный start получит AlreadyActive.
        # Пока идёт stop, новая сессия тоже запрещена.
        if (
            meeting_id in self._sessions
            or meeting_id in self._starting
            or meeting_id in self._stopping
        ):
            raise AlreadyActiveError(details={"meeting_id": meeting_id})
        self._starting.add(meeting_id)
        try:
            snapshot = await self.status_service.get(meeting_id)
            if snapshot.status == MeetingStatus.scheduled:
                try:
                    await self.status_service.start(meeting_id, actor_id=actor_id)
                except Exception as e:
                    log.warning(
                        "live_auto_start_failed",
                        extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
                    )
                snapshot = await self.status_service.get(meeting_id)

            if snapshot.status != MeetingStatus.in_progress:
                raise InvalidStateError(
                    "Live-транскрипция возможна только для встречи in-progress",
                    {"meeting_id": meeting_id, "status": snapshot.status.value},
                )

            transcript_id, seed_text = await asyncio.to_thread(self._open_transcript, meeting_id)
            now = self.clock()
            self._sessions[meeting_id] = _LiveSession(
                meeting_id=meeting_id,
                transcript_id=transcript_id,
                meeting_title=snapshot.title,
                text=seed_text,
                started_at=now,
                last_update=now,
            )
        finally:
            self._starting.discard(meeting_id)

        LIVE_SESSIONS_ACTIVE.inc()
        log.info(
            "live_session_started",
            extra={
                "meeting_id": meeting_id,
                "payload": {
                    "transcript_id": transcript_id,
                    "resumed_chars": len(seed_text),
                    "actor_id": actor_id,
                },
            },
        )
        return LiveStartResult(meeting_id=meeting_id, transcript_id=transcript_id)

    # =========================================================================
    # INGEST
    # =========================================================================
    async def ingest_chunk(
        self, meeting_id: int, audio: bytes | None, mime_type: str | None = None
    ) -> ChunkResult:
        session = self._sessions.get(meeting_id)
        if session is None:
            raise SessionNotFoundError(details={"meeting_id": meeting_id})

        if not audio:
            LIVE_CHUNKS_TOTAL.labels(result="empty").inc()
            return ChunkResult(transcribed="", summary=None, accumulated_length=len(session.text))

        ticket = session.take_ticket()
        try:
            text = await self._transcribe(meeting_id, audio, mime_type)
        except BaseException:
            # отмена запроса: очередь остальных чанков не должна зависнуть
            await self._append_in_turn(session, ticket, "")
            raise

        appended, accumulated, run_summary = await self._append_in_turn(session, ticket, text)
        if not appended:
            return ChunkResult(transcribed="", summary=None, accumulated_length=accumulated)

        self._schedule_flush(session)

        summary: InterimSummary | None = None
        if run_summary is not None:
            summary = await self._interim_summary(session, run_summary)

        piece = text.strip()
        await self._publish_increment(session, piece, accumulated, ticket, summary)
        return ChunkResult(transcribed=piece, summary=summary, accumulated_length=accumulated)

    async def _transcribe(self, meeting_id: int, audio: bytes, mime_type: str | None) -> str:
        """
        Ошибка STT на live-пути = "в этот раз текста нет".
        """
        try:
            with track_capability_latency("stt_live"):
                result = await asyncio.to_thread(
                    self.stt.transcribe, audio=audio, mime_type=mime_type
                )
        except Exception as e:
            LIVE_CHUNKS_TOTAL.labels(result="stt_failed").inc()
            record_capability_failure(capability="stt", path="live")
            log.warning(
                "live_chunk_stt_failed",
                extra={
                    "meeting_id": meeting_id,
                    "payload": {"bytes": len(audio), "err": str(e)[:200]},
                },
            )
            return ""
        return (result.text or "").strip()

    async def _append_in_turn(
        self, session: _LiveSession, ticket: int, text: str
    ) -> tuple[bool, int, str | None]:
        """
        Ждёт своей очереди и добавляет текст. Возвращает
        (добавлено ли, длина буфера, снимок буфера для interim summary или None).
        """
        async with session.turn:
            await session.turn.wait_for(lambda: session.next_turn == ticket)
            try:
                appended = session.append(text)
                summary_input: str | None = None
                if appended:
                    now = self.clock()
                    session.last_update = now
                    LIVE_CHUNKS_TOTAL.labels(result="text").inc()
                    if self._summary_due(session, now):
                        session.last_summary_at = now
                        summary_input = session.text
                return appended, len(session.text), summary_input
            finally:
                session.next_turn += 1
                session.turn.notify_all()

    def _summary_due(self, session: _LiveSession, now: datetime) -> bool:
        if session.last_summary_at is None:
            return True
        if now - session.last_summary_at > self.summary_interval:
            return True
        return len(session.text) > self.summary_min_chars

    async def _interim_summary(self, session: _LiveSession, text: str) -> InterimSummary | None:
        try:
            return await asyncio.to_thread(
                self.summarizer.interim_summary, text, session.meeting_title
            )
        except Exception as e:
            record_capability_failure(capability="llm", path="interim")
            log.warning(
                "live_interim_summary_failed",
                extra={"meeting_id": session.meeting_id, "payload": {"err": str(e)[:200]}},
            )
            return None

    async def _publish_increment(
        self,
        session: _LiveSession,
        piece: str,
        accumulated: int,
        sequence: int,
        summary: InterimSummary | None,
    ) -> None:
        try:
            await self.broadcaster.publish(
                session.meeting_id,
                TRANSCRIPT_INCREMENT,
                {
                    "text": piece,
                    "sequence": sequence,
                    "accumulated_length": accumulated,
                    "summary": summary.model_dump(by_alias=True) if summary else None,
                },
            )
        except Exception as e:
            log.warning(
                "live_increment_broadcast_failed",
                extra={"meeting_id": session.meeting_id, "payload": {"err": str(e)[:200]}},
            )

    # =========================================================================
    # FLUSH
    # =========================================================================
    def _schedule_flush(self, session: _LiveSession) -> None:
        # пока запись не взяла снимок буфера, повторно не планируем
        if session.flush_pending:
            return
        session.flush_pending = True
        self.background.spawn(
            self._flush(session), kind="live_flush", meeting_id=session.meeting_id
        )

    async def _flush(self, session: _LiveSession) -> None:
        async with session.flush_lock:
            session.flush_pending = False
            if session.closed:
                return
            await asyncio.to_thread(
                self._write_text, session.meeting_id, session.text, ProcessingStatus.processing
            )

    # =========================================================================
    # STOP
    # =========================================================================
    async def stop(self, meeting_id: int, *, actor_id: int | None = None) -> LiveStopResult:
        session = self._sessions.pop(meeting_id, None)
        if session is None:
            raise SessionNotFoundError(details={"meeting_id": meeting_id})
        LIVE_SESSIONS_ACTIVE.dec()
        # до выхода из stop() новый start получает AlreadyActive
        self._stopping.add(meeting_id)
        try:
            return await self._finish(session, actor_id=actor_id)
        finally:
            self._stopping.discard(meeting_id)

    async def _finish(self, session: _LiveSession, *, actor_id: int | None) -> LiveStopResult:
        meeting_id = session.meeting_id
        # новые чанки уже получают SessionNotFound; ждём принятые ранее
        async with session.turn:
            await session.turn.wait_for(lambda: session.next_turn == session.next_ticket)

        async with session.flush_lock:
            session.closed = True
            final_text = session.text
            try:
                await asyncio.to_thread(
                    self._write_text, meeting_id, final_text, ProcessingStatus.completed
                )
            except Exception as e:
                log.error(
                    "live_final_write_failed",
                    extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
                )
                raise PersistenceError(
                    "Не удалось сохранить транскрипт", {"meeting_id": meeting_id}
                ) from e

        meeting_status = await self._complete_meeting(meeting_id, actor_id=actor_id)
        log.info(
            "live_session_stopped",
            extra={
                "meeting_id": meeting_id,
                "payload": {
                    "final_length": len(final_text),
                    "meeting_status": meeting_status.value,
                    "actor_id": actor_id,
                },
            },
        )
        return LiveStopResult(
            meeting_id=meeting_id,
            transcript_id=session.transcript_id,
            final_length=len(final_text),
            meeting_status=meeting_status,
        )

    async def _complete_meeting(self, meeting_id: int, *, actor_id: int | None) -> MeetingStatus:
        snapshot = await self.status_service.get(meeting_id)
        if snapshot.status != MeetingStatus.in_progress:
            return snapshot.status
        try:
            snapshot = await self.status_service.stop(meeting_id, actor_id=actor_id)
        except InvalidStateError:
            # встречу успели завершить другим путём
            snapshot = await self.status_service.get(meeting_id)
        return snapshot.status

    async def stop_all(self) -> None:
        """
        Shutdown: финальная запись по всем активным сессиям.
        """
        for meeting_id in list(self._sessions):
            try:
                await self.stop(meeting_id)
            except Exception as e:
                log.error(
                    "live_session_stop_on_shutdown_failed",
                    extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
                )

    # =========================================================================
    # STATUS
    # =========================================================================
    async def status(self, meeting_id: int) -> LiveStatus:
        session = self._sessions.get(meeting_id)
        if session is not None:
            return LiveStatus(
                is_active=True,
                transcript_id=session.transcript_id,
                accumulated_length=len(session.text),
                started_at=session.started_at,
                last_update=session.last_update,
            )
        try:
            transcript_id = await asyncio.to_thread(self._stored_transcript_id, meeting_id)
        except Exception as e:
            log.warning(
                "live_status_lookup_failed",
                extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
            )
            transcript_id = None
        return LiveStatus(is_active=False, transcript_id=transcript_id)

    # =========================================================================
    # STORAGE (sync, вызывается через asyncio.to_thread)
    # =========================================================================
    def _open_transcript(self, meeting_id: int) -> tuple[int, str]:
        with self.session_scope() as s:
            tr = TranscriptRepository(s).get_or_create(meeting_id)
            tr.processing_status = ProcessingStatus.processing
            return tr.id, (tr.raw_text or "").strip()

    def _write_text(self, meeting_id: int, text: str, status: ProcessingStatus) -> None:
        with self.session_scope() as s:
            TranscriptRepository(s).write_raw_text(
                meeting_id, raw_text=text, processing_status=status
            )

    def _stored_transcript_id(self, meeting_id: int) -> int | None:
        with self.session_scope() as s:
            tr = TranscriptRepository(s).get_by_meeting(meeting_id)
            return tr.id if tr is not None else None
