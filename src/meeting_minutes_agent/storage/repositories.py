"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
- Смена статуса встречи - только через compare_and_set_status
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import desc, func, update
from sqlalchemy.orm import Session

from meeting_minutes_agent.domain.enums import MeetingStatus, ProcessingStatus, TaskStatus

from .models import Attendance, Meeting, Task, Transcript, User


def _limit(limit: int) -> int:
    return max(1, min(limit, 500))


# =============================================================================
# USER REPOSITORY
# =============================================================================
class UserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def save(self, user: User) -> None:
        self.session.add(user)

    def list_by_ids(self, user_ids: Iterable[int]) -> list[User]:
        ids = sorted(set(user_ids))
        if not ids:
            return []
        return self.session.query(User).filter(User.id.in_(ids)).order_by(User.id).all()

    def find_first_by_name_substring(self, fragment: str) -> User | None:
        """
        Первый (по id) пользователь, в имени которого встречается fragment.
        Регистр не учитывается.
        """
        needle = (fragment or "").strip()
        if not needle:
            return None
        return (
            self.session.query(User)
            .filter(func.lower(User.name).contains(needle.lower(), autoescape=True))
            .order_by(User.id)
            .first()
        )


# =============================================================================
# MEETING REPOSITORY
# =============================================================================
class MeetingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, meeting_id: int) -> Meeting | None:
        return self.session.get(Meeting, meeting_id)

    def save(self, meeting: Meeting) -> None:
        self.session.add(meeting)

    def list_recent(self, *, limit: int = 50, status: MeetingStatus | None = None) -> list[Meeting]:
        query = self.session.query(Meeting)
        if status is not None:
            query = query.filter(Meeting.status == status)
        return query.order_by(desc(Meeting.scheduled_at), desc(Meeting.id)).limit(_limit(limit)).all()

    def list_due_scheduled(self, now: datetime) -> list[Meeting]:
        """
        scheduled-встречи, время которых уже наступило.
        """
        return (
            self.session.query(Meeting)
            .filter(Meeting.status == MeetingStatus.scheduled, Meeting.scheduled_at <= now)
            .order_by(Meeting.scheduled_at, Meeting.id)
            .all()
        )

    def compare_and_set_status(
        self,
        meeting_id: int,
        *,
        allowed_from: Iterable[MeetingStatus],
        new_status: MeetingStatus,
        now: datetime,
    ) -> bool:
        """
        Атомарная смена статуса: UPDATE ... WHERE id = :id AND status IN (:allowed).
        False - строки нет или статус уже не из allowed_from.
        """
        stmt = (
            update(Meeting)
            .where(Meeting.id == meeting_id, Meeting.status.in_(list(allowed_from)))
            .values(status=new_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return (result.rowcount or 0) == 1


# =============================================================================
# TRANSCRIPT REPOSITORY
# =============================================================================
class TranscriptRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_meeting(self, meeting_id: int) -> Transcript | None:
        return (
            self.session.query(Transcript)
            .filter(Transcript.meeting_id == meeting_id)
            .one_or_none()
        )

    def get_or_create(self, meeting_id: int) -> Transcript:
        """
        Транскрипт встречи; если его нет - создаётся пустой и привязывается к Meeting.
        """
        tr = self.get_by_meeting(meeting_id)
        if tr is not None:
            return tr
        tr = Transcript(
            meeting_id=meeting_id,
            raw_text="",
            processing_status=ProcessingStatus.pending,
        )
        self.session.add(tr)
        self.session.flush()
        meeting = self.session.get(Meeting, meeting_id)
        if meeting is not None:
            meeting.transcript_id = tr.id
        return tr

    def write_raw_text(
        self,
        meeting_id: int,
        *,
        raw_text: str,
        processing_status: ProcessingStatus,
        audio_mime_type: str | None = None,
    ) -> Transcript:
        tr = self.get_or_create(meeting_id)
        tr.raw_text = raw_text
        tr.processing_status = processing_status
        if audio_mime_type:
            tr.audio_mime_type = audio_mime_type
        return tr


# =============================================================================
# TASK REPOSITORY
# =============================================================================
class TaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, task_id: int) -> Task | None:
        return self.session.get(Task, task_id)

    def add(self, task: Task) -> Task:
        self.session.add(task)
        self.session.flush()
        return task

    def list_filtered(
        self,
        *,
        meeting_id: int | None = None,
        assigned_to: int | None = None,
        status: TaskStatus | None = None,
        limit: int = 100,
    ) -> list[Task]:
        query = self.session.query(Task)
        if meeting_id is not None:
            query = query.filter(Task.meeting_id == meeting_id)
        if assigned_to is not None:
            query = query.filter(Task.assigned_to == assigned_to)
        if status is not None:
            query = query.filter(Task.status == status)
        return query.order_by(Task.deadline, Task.id).limit(_limit(limit)).all()


# =============================================================================
# ATTENDANCE REPOSITORY
# =============================================================================
class AttendanceRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, meeting_id: int, user_id: int) -> Attendance | None:
        return (
            self.session.query(Attendance)
            .filter(Attendance.meeting_id == meeting_id, Attendance.user_id == user_id)
            .one_or_none()
        )

    def add(self, record: Attendance) -> Attendance:
        self.session.add(record)
        self.session.flush()
        return record

    def list_by_meeting(self, meeting_id: int) -> list[Attendance]:
        return (
            self.session.query(Attendance)
            .filter(Attendance.meeting_id == meeting_id)
            .order_by(Attendance.timestamp, Attendance.id)
            .all()
        )
