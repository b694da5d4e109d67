"""
Auto-summary и тикеты по итогам встречи.

Назначение:
- финальное структурированное резюме по полному транскрипту
- сохранение резюме в Transcript
- action items -> Task (исполнитель, дедлайн, приоритет по политикам processing.action_items)

Обработка ошибок:
- нет транскрипта / пустой текст -> успех без резюме (reason="no_transcript")
- сбой LLM фатален: транскрипт помечается failed, ошибка уходит вызывающему
- сбой по одному action item логируется и пропускается, остальные создаются

Идемпотентность не гарантируется: повторный run() перегенерирует резюме
и создаст задачи заново. Автоматический путь (после stop) передаёт
skip_if_summarized=True.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.errors import NotFoundError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.metrics import TICKETS_CREATED_TOTAL, record_capability_failure
from meeting_minutes_agent.common.time import Clock, utc_now
from meeting_minutes_agent.contracts.ws_events import SUMMARY_GENERATED
from meeting_minutes_agent.delivery.base import TaskAssignment
from meeting_minutes_agent.domain.enums import ProcessingStatus, TaskPriority, TaskStatus
from meeting_minutes_agent.domain.summary import ActionItem, StructuredSummary
from meeting_minutes_agent.processing.action_items import (
    infer_priority,
    match_assignee,
    resolve_deadline,
)
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.models import Task
from meeting_minutes_agent.storage.repositories import (
    MeetingRepository,
    TaskRepository,
    TranscriptRepository,
    UserRepository,
)

from .background import BackgroundRunner
from .broadcast import Broadcaster
from .meeting_status_service import MeetingSnapshot
from .notification_service import NotificationService, assignment_for
from .summarization_service import Summarizer

log = get_project_logger()

REASON_NO_TRANSCRIPT = "no_transcript"
REASON_ALREADY_SUMMARIZED = "already_summarized"


@dataclass
class TicketInfo:
    id: int
    title: str
    assigned_to: int
    deadline: datetime
    priority: TaskPriority
    status: TaskStatus


@dataclass
class AutoSummaryResult:
    meeting_id: int
    summary_generated: bool
    tickets_created: int = 0
    tickets: list[TicketInfo] = field(default_factory=list)
    failed_items: int = 0
    reason: str | None = None
    summary: StructuredSummary | None = None


@dataclass
class _MeetingInput:
    meeting_id: int
    title: str
    organizer_id: int
    text: str
    already_summarized: bool


class AutoSummaryPipeline:
    def __init__(
        self,
        *,
        session_scope: SessionScope,
        summarizer: Summarizer,
        broadcaster: Broadcaster,
        background: BackgroundRunner,
        notifications: NotificationService,
        clock: Clock = utc_now,
        settings: Settings | None = None,
    ) -> None:
        s = settings or get_settings()
        self.session_scope = session_scope
        self.summarizer = summarizer
        self.broadcaster = broadcaster
        self.background = background
        self.notifications = notifications
        self.clock = clock
        self.default_deadline_days = int(s.task_default_deadline_days)

    async def on_meeting_completed(self, snapshot: MeetingSnapshot) -> None:
        """Completion listener для MeetingStatusService."""
        result = await self.run(snapshot.id, skip_if_summarized=True)
        log.info(
            "auto_summary_on_completion",
            extra={
                "meeting_id": snapshot.id,
                "payload": {
                    "summary_generated": result.summary_generated,
                    "tickets_created": result.tickets_created,
                    "reason": result.reason,
                },
            },
        )

    async def run(self, meeting_id: int, *, skip_if_summarized: bool = False) -> AutoSummaryResult:
        data = await asyncio.to_thread(self._load_input, meeting_id)

        if not data.text.strip():
            log.info(
                "auto_summary_skipped",
                extra={"meeting_id": meeting_id, "payload": {"reason": REASON_NO_TRANSCRIPT}},
            )
            return AutoSummaryResult(
                meeting_id=meeting_id, summary_generated=False, reason=REASON_NO_TRANSCRIPT
            )
        if skip_if_summarized and data.already_summarized:
            log.info(
                "auto_summary_skipped",
                extra={"meeting_id": meeting_id, "payload": {"reason": REASON_ALREADY_SUMMARIZED}},
            )
            return AutoSummaryResult(
                meeting_id=meeting_id, summary_generated=False, reason=REASON_ALREADY_SUMMARIZED
            )

        try:
            summary = await asyncio.to_thread(
                self.summarizer.structured_summary, data.text, data.title
            )
        except Exception as e:
            record_capability_failure(capability="llm", path="final")
            log.error(
                "auto_summary_failed",
                extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
            )
            try:
                await asyncio.to_thread(self._mark_failed, meeting_id)
            except Exception as mark_err:
                log.error(
                    "auto_summary_mark_failed_error",
                    extra={"meeting_id": meeting_id, "payload": {"err": str(mark_err)[:200]}},
                )
            raise

        now = self.clock()
        await asyncio.to_thread(self._persist_summary, meeting_id, summary)

        tickets: list[TicketInfo] = []
        failed = 0
        for index, item in enumerate(summary.action_items):
            try:
                ticket, assignment = await asyncio.to_thread(self._create_ticket, data, item, now)
            except Exception as e:
                failed += 1
                TICKETS_CREATED_TOTAL.labels(result="failed").inc()
                log.error(
                    "auto_ticket_failed",
                    extra={
                        "meeting_id": meeting_id,
                        "payload": {"index": index, "title": item.title, "err": str(e)[:200]},
                    },
                )
                continue
            TICKETS_CREATED_TOTAL.labels(result="created").inc()
            tickets.append(ticket)
            if assignment is not None:
                self.notifications.schedule_task_assigned(assignment)

        log.info(
            "auto_summary_done",
            extra={
                "meeting_id": meeting_id,
                "payload": {
                    "action_items": len(summary.action_items),
                    "tickets_created": len(tickets),
                    "failed_items": failed,
                },
            },
        )
        await self._publish_generated(meeting_id, summary, len(tickets))
        return AutoSummaryResult(
            meeting_id=meeting_id,
            summary_generated=True,
            tickets_created=len(tickets),
            tickets=tickets,
            failed_items=failed,
            summary=summary,
        )

    # =========================================================================
    # ШАГИ (sync, через asyncio.to_thread)
    # =========================================================================
    def _load_input(self, meeting_id: int) -> _MeetingInput:
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            tr = TranscriptRepository(s).get_by_meeting(meeting_id)
            return _MeetingInput(
                meeting_id=meeting_id,
                title=meeting.title,
                organizer_id=meeting.organizer_id,
                text=(tr.raw_text or "") if tr is not None else "",
                already_summarized=bool(tr is not None and tr.summary_json),
            )

    def _mark_failed(self, meeting_id: int) -> None:
        with self.session_scope() as s:
            tr = TranscriptRepository(s).get_by_meeting(meeting_id)
            if tr is not None:
                tr.processing_status = ProcessingStatus.failed

    def _persist_summary(self, meeting_id: int, summary: StructuredSummary) -> None:
        document = summary.to_document()
        with self.session_scope() as s:
            tr = TranscriptRepository(s).get_or_create(meeting_id)
            tr.summary_text = summary.abstract
            tr.summary_json = document
            tr.action_items_json = document["action_items"]
            tr.minutes_formatted = json.dumps(document, ensure_ascii=False, indent=2)
            tr.processing_status = ProcessingStatus.completed

    def _create_ticket(
        self, data: _MeetingInput, item: ActionItem, now: datetime
    ) -> tuple[TicketInfo, TaskAssignment | None]:
        with self.session_scope() as s:
            users = UserRepository(s)

            def _find_user_id(hint: str) -> int | None:
                user = users.find_first_by_name_substring(hint)
                return user.id if user is not None else None

            match = match_assignee(
                item.assignee_hint, organizer_id=data.organizer_id, find_user_id=_find_user_id
            )
            task = Task(
                meeting_id=data.meeting_id,
                assigned_to=match.user_id,
                assigned_by=data.organizer_id,
                title=item.title[:255],
                description=item.description,
                deadline=resolve_deadline(
                    item.deadline_hint, now=now, default_days=self.default_deadline_days
                ),
                status=TaskStatus.pending,
                priority=infer_priority(item.title, item.description),
            )
            TaskRepository(s).add(task)

            assignment = assignment_for(s, task)
            ticket = TicketInfo(
                id=task.id,
                title=task.title,
                assigned_to=task.assigned_to,
                deadline=task.deadline,
                priority=TaskPriority(task.priority),
                status=TaskStatus(task.status),
            )
            return ticket, assignment

    # =========================================================================
    # ПОБОЧНЫЕ ЭФФЕКТЫ
    # =========================================================================
    async def _publish_generated(
        self, meeting_id: int, summary: StructuredSummary, tickets_created: int
    ) -> None:
        try:
            await self.broadcaster.publish(
                meeting_id,
                SUMMARY_GENERATED,
                {"abstract": summary.abstract, "tickets_created": tickets_created},
            )
        except Exception as e:
            log.warning(
                "summary_broadcast_failed",
                extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
            )
