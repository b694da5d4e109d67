from __future__ import annotations

from meeting_minutes_agent.common.logging import get_project_logger

from .base import DeliveryResult, MeetingCompletion, Notifier, TaskAssignment
from .results import ok_result

log = get_project_logger()


class LogNotifier(Notifier):
    """Dev-провайдер: уведомление только пишется в лог."""

    def notify_task_assigned(self, assignment: TaskAssignment) -> DeliveryResult:
        log.info(
            "task_assignment_notified",
            extra={
                "meeting_id": assignment.meeting_id,
                "payload": {"task_id": assignment.task_id, "provider": "log"},
            },
        )
        return ok_result("log")

    def notify_task_reminder(self, reminder: TaskAssignment) -> DeliveryResult:
        log.info(
            "task_reminder_notified",
            extra={
                "meeting_id": reminder.meeting_id,
                "payload": {"task_id": reminder.task_id, "provider": "log"},
            },
        )
        return ok_result("log")

    def notify_meeting_completed(self, completion: MeetingCompletion) -> DeliveryResult:
        log.info(
            "meeting_completion_notified",
            extra={
                "meeting_id": completion.meeting_id,
                "payload": {
                    "recipients": len(completion.recipients),
                    "tasks": len(completion.tasks),
                    "provider": "log",
                },
            },
        )
        return ok_result("log")
