"""
Базовые интерфейсы доставки уведомлений.

Назначение:
- Единый контракт для каналов (email / только лог)
- Три уведомления: назначение задачи, напоминание по задаче, итоги встречи
- Возможность переключения провайдера через NOTIFY_PROVIDER
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


@dataclass
class DeliveryResult:
    """
    Результат доставки.
    """

    ok: bool
    provider: str
    message_id: str | None = None
    error: str | None = None
    meta: dict[str, Any] | None = None


@dataclass
class TaskAssignment:
    """
    Что сообщаем исполнителю о новой задаче.
    """

    task_id: int
    task_title: str
    deadline: datetime
    meeting_id: int
    meeting_title: str
    assignee_name: str
    assignee_email: str


@dataclass
class CompletionTaskLine:
    title: str
    assignee_name: str
    deadline: datetime
    priority: str


@dataclass
class MeetingCompletion:
    """
    Итоги завершённой встречи: одно письмо на всех получателей.
    """

    meeting_id: int
    meeting_title: str
    scheduled_at: datetime
    recipients: list[str]
    abstract: str | None = None
    key_points: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    tasks: list[CompletionTaskLine] = field(default_factory=list)


class Notifier(Protocol):
    """
    Контракт провайдера уведомлений.
    """

    def notify_task_assigned(self, assignment: TaskAssignment) -> DeliveryResult: ...

    def notify_task_reminder(self, reminder: TaskAssignment) -> DeliveryResult: ...

    def notify_meeting_completed(self, completion: MeetingCompletion) -> DeliveryResult: ...
