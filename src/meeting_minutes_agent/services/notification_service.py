"""
Уведомления участников.

Назначение:
- назначение задачи: fire-and-forget через BackgroundRunner
- напоминание по задаче: синхронно для вызывающего, отметка reminder_sent_at
- итоги встречи после completed: организатор, отметившиеся и участники

Ошибки:
- сбой доставки фоновых уведомлений только логируется
- сбой напоминания уходит вызывающему как ProviderError (503)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from meeting_minutes_agent.common.errors import (
    ErrCode,
    ForbiddenError,
    NotFoundError,
    ProviderError,
)
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import Clock, to_naive_utc, utc_now
from meeting_minutes_agent.delivery.base import (
    CompletionTaskLine,
    DeliveryResult,
    MeetingCompletion,
    Notifier,
    TaskAssignment,
)
from meeting_minutes_agent.domain.enums import UserRole
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.models import Task
from meeting_minutes_agent.storage.repositories import (
    AttendanceRepository,
    MeetingRepository,
    TaskRepository,
    TranscriptRepository,
    UserRepository,
)

from .background import BackgroundRunner
from .meeting_status_service import MeetingSnapshot

log = get_project_logger()


def assignment_for(s: Session, task: Task) -> TaskAssignment | None:
    """
    Данные письма исполнителю; None, если у исполнителя нет email.
    """
    assignee = UserRepository(s).get(task.assigned_to)
    if assignee is None or not assignee.email:
        return None
    meeting = MeetingRepository(s).get(task.meeting_id)
    return TaskAssignment(
        task_id=task.id,
        task_title=task.title,
        deadline=task.deadline,
        meeting_id=task.meeting_id,
        meeting_title=meeting.title if meeting is not None else "",
        assignee_name=assignee.name,
        assignee_email=assignee.email,
    )


@dataclass
class TaskReminderResult:
    task_id: int
    sent: bool
    provider: str
    reminder_sent_at: datetime | None = None


class NotificationService:
    def __init__(
        self,
        *,
        session_scope: SessionScope,
        notifier: Notifier,
        background: BackgroundRunner,
        clock: Clock = utc_now,
    ) -> None:
        self.session_scope = session_scope
        self.notifier = notifier
        self.background = background
        self.clock = clock

    # =========================================================================
    # НАЗНАЧЕНИЕ ЗАДАЧИ
    # =========================================================================
    def schedule_task_assigned(self, assignment: TaskAssignment) -> None:
        self.background.spawn(
            self._deliver_assigned(assignment),
            kind="task_notification",
            meeting_id=assignment.meeting_id,
        )

    async def _deliver_assigned(self, assignment: TaskAssignment) -> None:
        result = await asyncio.to_thread(self.notifier.notify_task_assigned, assignment)
        if not result.ok:
            _log_failed("task_notification_failed", assignment.meeting_id, result,
                        task_id=assignment.task_id)

    # =========================================================================
    # НАПОМИНАНИЕ
    # =========================================================================
    async def send_task_reminder(
        self, task_id: int, *, actor_id: int, actor_role: str
    ) -> TaskReminderResult:
        reminder = await asyncio.to_thread(self._load_reminder, task_id, actor_id, actor_role)
        result = await asyncio.to_thread(self.notifier.notify_task_reminder, reminder)
        if not result.ok:
            _log_failed("task_reminder_failed", reminder.meeting_id, result, task_id=task_id)
            raise ProviderError(
                ErrCode.DELIVERY_PROVIDER_ERROR,
                "Не удалось отправить напоминание",
                {"task_id": task_id, "provider": result.provider, "err": result.error},
            )

        sent_at = await asyncio.to_thread(self._mark_reminded, task_id)
        log.info(
            "task_reminder_sent",
            extra={
                "meeting_id": reminder.meeting_id,
                "payload": {"task_id": task_id, "provider": result.provider, "actor_id": actor_id},
            },
        )
        return TaskReminderResult(
            task_id=task_id, sent=True, provider=result.provider, reminder_sent_at=sent_at
        )

    def _load_reminder(self, task_id: int, actor_id: int, actor_role: str) -> TaskAssignment:
        with self.session_scope() as s:
            task = TaskRepository(s).get(task_id)
            if task is None:
                raise NotFoundError("Задача не найдена", {"task_id": task_id})
            if actor_role != UserRole.admin.value and task.assigned_to != actor_id:
                raise ForbiddenError("Недостаточно прав", {"task_id": task_id})
            reminder = assignment_for(s, task)
            if reminder is None:
                raise ProviderError(
                    ErrCode.DELIVERY_PROVIDER_ERROR,
                    "У исполнителя нет email",
                    {"task_id": task_id, "assigned_to": task.assigned_to},
                )
            return reminder

    def _mark_reminded(self, task_id: int) -> datetime:
        now = to_naive_utc(self.clock())
        with self.session_scope() as s:
            task = TaskRepository(s).get(task_id)
            if task is not None:
                task.reminder_sent_at = now
        return now

    # =========================================================================
    # ИТОГИ ВСТРЕЧИ
    # =========================================================================
    async def on_meeting_completed(self, snapshot: MeetingSnapshot) -> None:
        """Completion listener: одно письмо с итогами на всех получателей."""
        completion = await asyncio.to_thread(self._load_completion, snapshot.id)
        if completion is None:
            log.info("meeting_completion_no_recipients", extra={"meeting_id": snapshot.id})
            return
        result = await asyncio.to_thread(self.notifier.notify_meeting_completed, completion)
        if not result.ok:
            _log_failed("meeting_completion_notification_failed", snapshot.id, result)
            return
        log.info(
            "meeting_completion_notified",
            extra={
                "meeting_id": snapshot.id,
                "payload": {"recipients": len(completion.recipients), "tasks": len(completion.tasks)},
            },
        )

    def _load_completion(self, meeting_id: int) -> MeetingCompletion | None:
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            users = UserRepository(s)

            emails: list[str] = []
            participant_ids = [p for p in (meeting.participants or []) if isinstance(p, int)]
            participant_emails = [
                p for p in (meeting.participants or []) if isinstance(p, str) and "@" in p
            ]
            attendee_ids = [a.user_id for a in AttendanceRepository(s).list_by_meeting(meeting_id)]
            organizer = users.get(meeting.organizer_id)
            if organizer is not None:
                emails.append(organizer.email)
            emails.extend(u.email for u in users.list_by_ids(attendee_ids + participant_ids))
            emails.extend(participant_emails)
            recipients = list(dict.fromkeys(e.strip() for e in emails if e and e.strip()))
            if not recipients:
                return None

            tr = TranscriptRepository(s).get_by_meeting(meeting_id)
            summary = (tr.summary_json or {}) if tr is not None else {}
            tasks = TaskRepository(s).list_filtered(meeting_id=meeting_id, limit=500)
            names = {u.id: u.name for u in users.list_by_ids(t.assigned_to for t in tasks)}
            return MeetingCompletion(
                meeting_id=meeting_id,
                meeting_title=meeting.title,
                scheduled_at=meeting.scheduled_at,
                recipients=recipients,
                abstract=tr.summary_text if tr is not None else None,
                key_points=list(summary.get("key_points") or []),
                decisions=list(summary.get("decisions") or []),
                tasks=[
                    CompletionTaskLine(
                        title=t.title,
                        assignee_name=names.get(t.assigned_to, f"user {t.assigned_to}"),
                        deadline=t.deadline,
                        priority=str(getattr(t.priority, "value", t.priority)),
                    )
                    for t in tasks
                ],
            )


def _log_failed(event: str, meeting_id: int, result: DeliveryResult, **payload) -> None:
    log.warning(
        event,
        extra={
            "meeting_id": meeting_id,
            "payload": {**payload, "provider": result.provider, "err": (result.error or "")[:200]},
        },
    )
