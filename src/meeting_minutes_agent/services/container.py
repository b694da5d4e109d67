"""
Сборка сервисов приложения.

Назначение:
- один экземпляр каждого сервиса на процесс (gateway кладёт контейнер в app.state)
- тесты собирают свой контейнер с SQLite во временном каталоге и фейковыми STT/LLM
"""

from __future__ import annotations

from dataclasses import dataclass

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import Clock, utc_now
from meeting_minutes_agent.delivery.base import Notifier
from meeting_minutes_agent.delivery.factory import build_notifier
from meeting_minutes_agent.llm.base import LLMProvider
from meeting_minutes_agent.llm.factory import build_llm_provider
from meeting_minutes_agent.llm.orchestrator import LLMOrchestrator
from meeting_minutes_agent.storage.db import SessionScope, db_session, with_clock
from meeting_minutes_agent.stt.base import STTProvider
from meeting_minutes_agent.stt.factory import build_stt_provider

from .attendance_service import AttendanceService
from .auto_summary_service import AutoSummaryPipeline
from .background import BackgroundRunner
from .broadcast import Broadcaster, build_broadcaster
from .live_transcription_service import LiveTranscriptionRegistry
from .meeting_service import MeetingService
from .meeting_status_service import MeetingSnapshot, MeetingStatusService
from .notification_service import NotificationService
from .report_service import ReportService
from .summarization_service import Summarizer
from .task_service import TaskService
from .transcription_service import TranscriptionService

log = get_project_logger()


@dataclass
class ServiceContainer:
    settings: Settings
    background: BackgroundRunner
    broadcaster: Broadcaster
    status: MeetingStatusService
    live: LiveTranscriptionRegistry
    pipeline: AutoSummaryPipeline
    notifications: NotificationService
    reports: ReportService
    meetings: MeetingService
    transcription: TranscriptionService
    attendance: AttendanceService
    tasks: TaskService

    async def shutdown(self, *, drain_timeout: float = 30.0) -> None:
        await self.live.stop_all()
        await self.background.drain(timeout=drain_timeout)
        self.background.cancel_all()
        await self.broadcaster.close()


def build_container(
    *,
    settings: Settings | None = None,
    session_scope: SessionScope = db_session,
    stt: STTProvider | None = None,
    llm: LLMProvider | None = None,
    notifier: Notifier | None = None,
    broadcaster: Broadcaster | None = None,
    clock: Clock = utc_now,
) -> ServiceContainer:
    s = settings or get_settings()
    session_scope = with_clock(session_scope, clock)
    stt = stt or build_stt_provider(s)
    summarizer = Summarizer(LLMOrchestrator(llm or build_llm_provider(s), s), s)
    broadcaster = broadcaster or build_broadcaster(s)
    background = BackgroundRunner()

    status = MeetingStatusService(
        session_scope=session_scope,
        broadcaster=broadcaster,
        background=background,
        clock=clock,
    )
    notifications = NotificationService(
        session_scope=session_scope,
        notifier=notifier or build_notifier(s),
        background=background,
        clock=clock,
    )
    pipeline = AutoSummaryPipeline(
        session_scope=session_scope,
        summarizer=summarizer,
        broadcaster=broadcaster,
        background=background,
        notifications=notifications,
        clock=clock,
        settings=s,
    )
    status.add_completion_listener(
        _completion_chain(
            pipeline if s.auto_summary_on_complete else None,
            notifications if s.meeting_completion_emails else None,
        )
    )

    live = LiveTranscriptionRegistry(
        session_scope=session_scope,
        stt=stt,
        summarizer=summarizer,
        status_service=status,
        broadcaster=broadcaster,
        background=background,
        clock=clock,
        settings=s,
    )
    return ServiceContainer(
        settings=s,
        background=background,
        broadcaster=broadcaster,
        status=status,
        live=live,
        pipeline=pipeline,
        notifications=notifications,
        reports=ReportService(session_scope=session_scope, clock=clock),
        meetings=MeetingService(session_scope=session_scope),
        transcription=TranscriptionService(session_scope=session_scope, stt=stt),
        attendance=AttendanceService(
            session_scope=session_scope, broadcaster=broadcaster, clock=clock
        ),
        tasks=TaskService(
            session_scope=session_scope, notifications=notifications, clock=clock
        ),
    )


def _completion_chain(
    pipeline: AutoSummaryPipeline | None, notifications: NotificationService | None
):
    # письмо с итогами уходит после резюме, чтобы в него попали задачи
    async def on_completed(snapshot: MeetingSnapshot) -> None:
        if pipeline is not None:
            try:
                await pipeline.on_meeting_completed(snapshot)
            except Exception as e:
                log.error(
                    "auto_summary_on_completion_failed",
                    extra={"meeting_id": snapshot.id, "payload": {"err": str(e)[:200]}},
                )
        if notifications is not None:
            await notifications.on_meeting_completed(snapshot)

    return on_completed
