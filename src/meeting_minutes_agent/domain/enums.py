"""
Доменные перечисления (enum).

Используются во всей системе:
- статус встречи (машина состояний)
- статус обработки транскрипта
- статус/приоритет задач
- роли пользователей и отметки посещаемости
"""

from __future__ import annotations

import enum


class MeetingStatus(str, enum.Enum):
    """
    Статус встречи.
    """

    scheduled = "scheduled"
    in_progress = "in-progress"
    completed = "completed"
    rescheduled = "rescheduled"
    cancelled = "cancelled"


class ProcessingStatus(str, enum.Enum):
    """
    Статус последней операции над транскриптом.
    """

    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class TaskStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in-progress"
    completed = "completed"
    overdue = "overdue"
    cancelled = "cancelled"


class TaskPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class UserRole(str, enum.Enum):
    admin = "admin"
    secretary = "secretary"
    official = "official"


class AttendanceStatus(str, enum.Enum):
    present = "present"
    late = "late"
    absent = "absent"


class CheckInMethod(str, enum.Enum):
    qr = "qr"
    manual = "manual"
