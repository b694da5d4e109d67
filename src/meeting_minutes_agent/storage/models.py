"""
ORM-модели базы данных.

Назначение:
- пользователи, встречи, транскрипты, задачи, посещаемость
- ленивое правило просрочки задач (pending + дедлайн в прошлом -> overdue)

Все даты хранятся naive UTC.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    object_session,
    relationship,
)

from meeting_minutes_agent.common.time import to_naive_utc, utc_naive
from meeting_minutes_agent.domain.enums import (
    AttendanceStatus,
    CheckInMethod,
    MeetingStatus,
    ProcessingStatus,
    TaskPriority,
    TaskStatus,
    UserRole,
)
from meeting_minutes_agent.storage.db import CLOCK_INFO_KEY


def _enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    # В БД храним value ("in-progress"), а не имя члена enum
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        validate_strings=True,
        length=32,
    )


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# USER
# =============================================================================
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole, "userrole"), default=UserRole.official, nullable=False
    )
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive, nullable=False)


# =============================================================================
# MEETING
# =============================================================================
class Meeting(Base):
    """
    Основная сущность - встреча. Статусом владеет машина состояний.
    """

    __tablename__ = "meetings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # колонка называется "datetime", атрибут переименован, чтобы не затенять тип
    scheduled_at: Mapped[datetime] = mapped_column("datetime", DateTime, nullable=False)

    status: Mapped[MeetingStatus] = mapped_column(
        _enum(MeetingStatus, "meetingstatus"),
        default=MeetingStatus.scheduled,
        nullable=False,
    )
    organizer_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Ссылка без FK-ограничения: transcripts.meeting_id уже ссылается на meetings
    transcript_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    participants: Mapped[list | None] = mapped_column(JSON, nullable=True)
    qr_code_token: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_naive, onupdate=utc_naive, nullable=False
    )

    organizer: Mapped[User] = relationship(foreign_keys=[organizer_id])
    transcript: Mapped[Transcript | None] = relationship(
        back_populates="meeting",
        uselist=False,
    )


# =============================================================================
# TRANSCRIPT
# =============================================================================
class Transcript(Base):
    """
    Транскрипт встречи (1:1). processing_status - единственный признак того,
    что текстом можно пользоваться дальше.
    """

    __tablename__ = "transcripts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meeting_id: Mapped[int] = mapped_column(
        ForeignKey("meetings.id"), unique=True, nullable=False
    )

    raw_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    summary_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    action_items_json: Mapped[list | None] = mapped_column(JSON, nullable=True)
    minutes_formatted: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_mime_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    processing_status: Mapped[ProcessingStatus] = mapped_column(
        _enum(ProcessingStatus, "processingstatus"),
        default=ProcessingStatus.pending,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_naive, onupdate=utc_naive, nullable=False
    )

    meeting: Mapped[Meeting] = relationship(back_populates="transcript")


# =============================================================================
# TASK
# =============================================================================
class Task(Base):
    """
    Задача (тикет). Ссылки на встречу и пользователей - слабые,
    удаление задачи ничего не каскадирует.
    """

    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meeting_id: Mapped[int] = mapped_column(ForeignKey("meetings.id"), nullable=False)
    assigned_to: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    assigned_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    deadline: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    status: Mapped[TaskStatus] = mapped_column(
        _enum(TaskStatus, "taskstatus"), default=TaskStatus.pending, nullable=False
    )
    priority: Mapped[TaskPriority] = mapped_column(
        _enum(TaskPriority, "taskpriority"), default=TaskPriority.medium, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_naive, onupdate=utc_naive, nullable=False
    )


def promote_if_overdue(task: Task, now: datetime | None = None) -> bool:
    """
    pending + дедлайн прошёл -> overdue. Возвращает True, если статус изменён.
    """
    current = now or utc_naive()
    if task.status in (TaskStatus.pending, None) and task.deadline is not None:
        if task.deadline < current:
            task.status = TaskStatus.overdue
            return True
    return False


def _session_now(session: Session | None) -> datetime | None:
    """
    "Сейчас" по часам сессии (storage.db.with_clock); без них - реальное время.
    """
    clock = session.info.get(CLOCK_INFO_KEY) if session is not None else None
    return to_naive_utc(clock()) if clock is not None else None


@event.listens_for(Task, "before_insert")
@event.listens_for(Task, "before_update")
def _task_overdue_on_save(_mapper, _connection, target: Task) -> None:
    promote_if_overdue(target, _session_now(object_session(target)))


@event.listens_for(Task, "load")
def _task_overdue_on_load(target: Task, context) -> None:
    promote_if_overdue(target, _session_now(context.session))


# =============================================================================
# ATTENDANCE
# =============================================================================
class Attendance(Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("meeting_id", "user_id", name="uq_attendance_meeting_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    meeting_id: Mapped[int] = mapped_column(ForeignKey("meetings.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utc_naive, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    check_in_method: Mapped[CheckInMethod] = mapped_column(
        _enum(CheckInMethod, "checkinmethod"), default=CheckInMethod.qr, nullable=False
    )
    status: Mapped[AttendanceStatus] = mapped_column(
        _enum(AttendanceStatus, "attendancestatus"),
        default=AttendanceStatus.present,
        nullable=False,
    )

    user: Mapped[User] = relationship()
