"""
Политики превращения action item в задачу.

Назначение:
- кому назначить (поиск пользователя по подсказке модели, иначе организатор)
- какой дедлайн (ISO-дата из подсказки, иначе "сейчас + N дней")
- какой приоритет (ключевые слова в заголовке/описании)

Чистые функции: без БД и без сети; поиск пользователя передаётся снаружи.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from meeting_minutes_agent.common.time import to_naive_utc
from meeting_minutes_agent.domain.enums import TaskPriority
from meeting_minutes_agent.domain.summary import TBD_ASSIGNEE

DEFAULT_DEADLINE_DAYS = 7

HIGH_PRIORITY_MARKERS = ("urgent", "asap", "critical")
LOW_PRIORITY_MARKERS = ("low priority", "whenever")


@dataclass(frozen=True)
class AssigneeMatch:
    user_id: int
    matched: bool  # False -> назначено на организатора


def is_unassigned_hint(hint: str | None) -> bool:
    text = (hint or "").strip()
    return not text or text.lower() == TBD_ASSIGNEE.lower()


def match_assignee(
    hint: str | None,
    *,
    organizer_id: int,
    find_user_id: Callable[[str], int | None],
) -> AssigneeMatch:
    """
    Подсказка есть и это не "TBD" -> первый пользователь (по id), в имени
    которого встречается подсказка без учёта регистра. Иначе организатор.
    """
    if is_unassigned_hint(hint):
        return AssigneeMatch(user_id=organizer_id, matched=False)
    user_id = find_user_id((hint or "").strip())
    if user_id is None:
        return AssigneeMatch(user_id=organizer_id, matched=False)
    return AssigneeMatch(user_id=user_id, matched=True)


def parse_deadline_hint(hint: str | None) -> datetime | None:
    """
    ISO дата/дата-время -> naive UTC. Всё остальное -> None.
    """
    text = (hint or "").strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return None
    return to_naive_utc(value)


def resolve_deadline(
    hint: str | None,
    *,
    now: datetime,
    default_days: int = DEFAULT_DEADLINE_DAYS,
) -> datetime:
    parsed = parse_deadline_hint(hint)
    if parsed is not None:
        return parsed
    return to_naive_utc(now) + timedelta(days=default_days)


def infer_priority(title: str | None, description: str | None) -> TaskPriority:
    text = f"{title or ''} {description or ''}".lower()
    if any(marker in text for marker in HIGH_PRIORITY_MARKERS):
        return TaskPriority.high
    if any(marker in text for marker in LOW_PRIORITY_MARKERS):
        return TaskPriority.low
    return TaskPriority.medium
