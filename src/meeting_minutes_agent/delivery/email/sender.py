"""
SMTP-отправка email.

Назначение:
- Уведомления: назначение задачи, напоминание, итоги встречи
- HTML + text (шаблоны Jinja2 в templates/)

Важно:
- Не логировать содержимое писем/транскриптов
- Логировать только метаданные (кому, статус, message-id)
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from functools import lru_cache
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, select_autoescape

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.delivery.base import (
    DeliveryResult,
    MeetingCompletion,
    Notifier,
    TaskAssignment,
)
from meeting_minutes_agent.delivery.results import fail_result, ok_result

log = get_project_logger()

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


@lru_cache(maxsize=1)
def _jinja() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
    )


def _render(name: str, ctx: dict[str, Any]) -> tuple[str, str]:
    env = _jinja()
    text = env.get_template(f"{name}.txt").render(**ctx)
    body = env.get_template(f"{name}.html").render(**ctx)
    return text, body


def _task_ctx(assignment: TaskAssignment, frontend_url: str) -> dict[str, Any]:
    return {
        "assignee_name": assignment.assignee_name,
        "meeting_title": assignment.meeting_title,
        "task_title": assignment.task_title,
        "deadline": assignment.deadline.strftime("%Y-%m-%d"),
        "link": f"{frontend_url.rstrip('/')}/tasks/{assignment.task_id}",
    }


def render_task_assigned(assignment: TaskAssignment, frontend_url: str) -> tuple[str, str, str]:
    """(subject, text, html) письма о новой задаче."""
    text, body = _render("task_assigned", _task_ctx(assignment, frontend_url))
    return f"New task assigned: {assignment.task_title}", text, body


def render_task_reminder(reminder: TaskAssignment, frontend_url: str) -> tuple[str, str, str]:
    """(subject, text, html) напоминания по задаче."""
    text, body = _render("task_reminder", _task_ctx(reminder, frontend_url))
    return f"Reminder: {reminder.task_title}", text, body


def render_meeting_completed(
    completion: MeetingCompletion, frontend_url: str
) -> tuple[str, str, str]:
    """(subject, text, html) письма с итогами встречи."""
    ctx = {
        "meeting_title": completion.meeting_title,
        "scheduled_at": completion.scheduled_at.strftime("%Y-%m-%d %H:%M"),
        "abstract": completion.abstract,
        "key_points": completion.key_points,
        "decisions": completion.decisions,
        "tasks": [
            {
                "title": t.title,
                "assignee_name": t.assignee_name,
                "deadline": t.deadline.strftime("%Y-%m-%d"),
                "priority": t.priority,
            }
            for t in completion.tasks
        ],
        "link": f"{frontend_url.rstrip('/')}/meetings/{completion.meeting_id}",
    }
    text, body = _render("meeting_completed", ctx)
    return f"Meeting summary: {completion.meeting_title}", text, body


class SMTPEmailNotifier(Notifier):
    def __init__(self, settings: Settings | None = None) -> None:
        self.s = settings or get_settings()

    def notify_task_assigned(self, assignment: TaskAssignment) -> DeliveryResult:
        subject, text_body, html_body = render_task_assigned(assignment, self.s.frontend_url)
        return self._send(
            [assignment.assignee_email],
            subject,
            text_body,
            html_body,
            meeting_id=assignment.meeting_id,
            meta={"task_id": assignment.task_id, "kind": "task_assigned"},
        )

    def notify_task_reminder(self, reminder: TaskAssignment) -> DeliveryResult:
        subject, text_body, html_body = render_task_reminder(reminder, self.s.frontend_url)
        return self._send(
            [reminder.assignee_email],
            subject,
            text_body,
            html_body,
            meeting_id=reminder.meeting_id,
            meta={"task_id": reminder.task_id, "kind": "task_reminder"},
        )

    def notify_meeting_completed(self, completion: MeetingCompletion) -> DeliveryResult:
        subject, text_body, html_body = render_meeting_completed(completion, self.s.frontend_url)
        return self._send(
            completion.recipients,
            subject,
            text_body,
            html_body,
            meeting_id=completion.meeting_id,
            meta={"kind": "meeting_completed", "recipients": len(completion.recipients)},
        )

    def _send(
        self,
        recipients: list[str],
        subject: str,
        text_body: str,
        html_body: str,
        *,
        meeting_id: int,
        meta: dict[str, Any],
    ) -> DeliveryResult:
        to = [r for r in recipients if r]
        if not to:
            return fail_result("smtp", "recipient_empty")

        if not self.s.smtp_host:
            return fail_result("smtp", "SMTP_HOST_not_set")

        msg = EmailMessage()
        msg["From"] = self.s.email_from
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.s.smtp_host, self.s.smtp_port, timeout=20) as smtp:
                smtp.ehlo()
                # STARTTLS только если сервер его объявил (в dev бывает без TLS)
                if smtp.has_extn("starttls"):
                    smtp.starttls()
                    smtp.ehlo()

                if self.s.smtp_user and self.s.smtp_pass:
                    smtp.login(self.s.smtp_user, self.s.smtp_pass)

                smtp.send_message(msg)

            log.info(
                "email_sent",
                extra={"meeting_id": meeting_id, "payload": {**meta, "provider": "smtp"}},
            )
            return ok_result("smtp", message_id=msg.get("Message-ID"))
        except (smtplib.SMTPException, OSError) as e:
            log.error(
                "email_send_failed",
                extra={"meeting_id": meeting_id, "payload": {**meta, "err": str(e)[:200]}},
            )
            return fail_result("smtp", str(e))
