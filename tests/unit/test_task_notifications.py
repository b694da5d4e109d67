from __future__ import annotations

from datetime import datetime

from meeting_minutes_agent.common.config import get_settings
from meeting_minutes_agent.delivery.base import CompletionTaskLine, MeetingCompletion, TaskAssignment
from meeting_minutes_agent.delivery.email.sender import (
    SMTPEmailNotifier,
    render_meeting_completed,
    render_task_assigned,
    render_task_reminder,
)
from meeting_minutes_agent.delivery.factory import build_notifier
from meeting_minutes_agent.delivery.log_notifier import LogNotifier


def _assignment(**overrides) -> TaskAssignment:
    data = {
        "task_id": 12,
        "task_title": "Send <draft> budget",
        "deadline": datetime(2030, 1, 8, 10, 0),
        "meeting_id": 3,
        "meeting_title": "Budget review",
        "assignee_name": "Jane Secretary",
        "assignee_email": "jane@meetgov.local",
    }
    data.update(overrides)
    return TaskAssignment(**data)


def test_render_task_assigned_escapes_html_only() -> None:
    subject, text, body = render_task_assigned(_assignment(), "http://front.local/")

    assert subject == "New task assigned: Send <draft> budget"
    assert "Task: Send <draft> budget" in text
    assert "Deadline: 2030-01-08" in text
    assert "http://front.local/tasks/12" in text
    assert "Send &lt;draft&gt; budget" in body
    assert 'href="http://front.local/tasks/12"' in body


def test_smtp_notifier_without_host_fails_softly() -> None:
    s = get_settings().model_copy(update={"smtp_host": None})
    result = SMTPEmailNotifier(s).notify_task_assigned(_assignment())
    assert result.ok is False
    assert result.error == "SMTP_HOST_not_set"


def test_smtp_notifier_requires_recipient() -> None:
    s = get_settings().model_copy(update={"smtp_host": "smtp.local"})
    result = SMTPEmailNotifier(s).notify_task_assigned(_assignment(assignee_email=""))
    assert result.ok is False
    assert result.error == "recipient_empty"


def test_build_notifier_by_provider() -> None:
    s = get_settings()
    smtp = build_notifier(s.model_copy(update={"notify_provider": "smtp"}))
    dev = build_notifier(s.model_copy(update={"notify_provider": "log"}))
    assert isinstance(smtp, SMTPEmailNotifier)
    assert isinstance(dev, LogNotifier)


def test_log_notifier_reports_ok() -> None:
    result = LogNotifier().notify_task_assigned(_assignment())
    assert result.ok is True
    assert result.provider == "log"


def _completion(**overrides) -> MeetingCompletion:
    data = {
        "meeting_id": 3,
        "meeting_title": "Budget <review>",
        "scheduled_at": datetime(2030, 1, 1, 10, 0),
        "recipients": ["olga@meetgov.local", "guest@city.local"],
        "abstract": "Budget approved",
        "key_points": ["Numbers checked"],
        "decisions": ["Approve draft"],
        "tasks": [
            CompletionTaskLine(
                title="Send draft",
                assignee_name="Jane Secretary",
                deadline=datetime(2030, 1, 8, 10, 0),
                priority="high",
            )
        ],
    }
    data.update(overrides)
    return MeetingCompletion(**data)


def test_render_task_reminder() -> None:
    subject, text, body = render_task_reminder(_assignment(), "http://front.local")
    assert subject == "Reminder: Send <draft> budget"
    assert "Deadline: 2030-01-08" in text
    assert "http://front.local/tasks/12" in text
    assert "Send &lt;draft&gt; budget" in body


def test_render_meeting_completed() -> None:
    subject, text, body = render_meeting_completed(_completion(), "http://front.local/")
    assert subject == "Meeting summary: Budget <review>"
    assert "Budget approved" in text
    assert "Numbers checked" in text
    assert "Approve draft" in text
    assert "Send draft" in text and "Jane Secretary" in text and "2030-01-08" in text
    assert "http://front.local/meetings/3" in text
    assert "Budget &lt;review&gt;" in body


def test_render_meeting_completed_without_summary() -> None:
    _, text, _ = render_meeting_completed(
        _completion(abstract=None, key_points=[], decisions=[], tasks=[]), "http://front.local"
    )
    assert "http://front.local/meetings/3" in text


def test_smtp_completion_without_recipients_fails_softly() -> None:
    s = get_settings().model_copy(update={"smtp_host": "smtp.local"})
    result = SMTPEmailNotifier(s).notify_meeting_completed(_completion(recipients=["", ""]))
    assert result.ok is False
    assert result.error == "recipient_empty"


def test_log_notifier_reminder_and_completion() -> None:
    notifier = LogNotifier()
    assert notifier.notify_task_reminder(_assignment()).ok is True
    assert notifier.notify_meeting_completed(_completion()).provider == "log"
