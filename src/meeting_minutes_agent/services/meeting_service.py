"""
Сервисный слой: встречи (создание / правка / чтение).

Назначение:
- создание встречи организатором (QR-токен для check-in)
- правка полей встречи (admin, secretary или организатор)
- чтение встречи, списка встреч и транскрипта

Статусом встречи здесь не управляем - это MeetingStatusService.
"""

from __future__ import annotations

from meeting_minutes_agent.common.errors import ForbiddenError, NotFoundError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import to_naive_utc
from meeting_minutes_agent.common.utils import new_qr_token
from meeting_minutes_agent.contracts.http_api import (
    MeetingCreateRequest,
    MeetingOut,
    MeetingUpdateRequest,
    TranscriptOut,
)
from meeting_minutes_agent.domain.enums import MeetingStatus, UserRole
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.models import Meeting
from meeting_minutes_agent.storage.repositories import MeetingRepository, TranscriptRepository

log = get_project_logger()

EDIT_ROLES = (UserRole.admin.value, UserRole.secretary.value)


class MeetingService:
    def __init__(self, *, session_scope: SessionScope) -> None:
        self.session_scope = session_scope

    def create(self, req: MeetingCreateRequest, *, organizer_id: int) -> MeetingOut:
        with self.session_scope() as s:
            meeting = Meeting(
                title=req.title.strip(),
                description=req.description,
                location=req.location,
                scheduled_at=to_naive_utc(req.scheduled_at),
                status=MeetingStatus.scheduled,
                organizer_id=organizer_id,
                participants=list(req.participants),
                qr_code_token=new_qr_token(),
            )
            repo = MeetingRepository(s)
            repo.save(meeting)
            s.flush()
            out = MeetingOut.model_validate(meeting)

        log.info(
            "meeting_created",
            extra={"meeting_id": out.id, "payload": {"organizer_id": organizer_id}},
        )
        return out

    def update(
        self, meeting_id: int, req: MeetingUpdateRequest, *, actor_id: int, actor_role: str
    ) -> MeetingOut:
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            if actor_role not in EDIT_ROLES and meeting.organizer_id != actor_id:
                raise ForbiddenError("Недостаточно прав", {"meeting_id": meeting_id})

            changed = sorted(req.model_dump(exclude_unset=True))
            if req.title is not None:
                meeting.title = req.title.strip()
            if req.description is not None:
                meeting.description = req.description
            if req.location is not None:
                meeting.location = req.location
            if req.scheduled_at is not None:
                meeting.scheduled_at = to_naive_utc(req.scheduled_at)
            if req.participants is not None:
                meeting.participants = list(req.participants)
            s.flush()
            out = MeetingOut.model_validate(meeting)

        log.info(
            "meeting_updated",
            extra={"meeting_id": meeting_id, "payload": {"fields": changed, "actor_id": actor_id}},
        )
        return out

    def get(self, meeting_id: int) -> MeetingOut:
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            return MeetingOut.model_validate(meeting)

    def list(self, *, status: MeetingStatus | None = None, limit: int = 50) -> list[MeetingOut]:
        with self.session_scope() as s:
            rows = MeetingRepository(s).list_recent(limit=limit, status=status)
            return [MeetingOut.model_validate(m) for m in rows]

    def get_transcript(self, meeting_id: int) -> TranscriptOut:
        with self.session_scope() as s:
            if MeetingRepository(s).get(meeting_id) is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            tr = TranscriptRepository(s).get_by_meeting(meeting_id)
            if tr is None:
                raise NotFoundError("Транскрипт не найден", {"meeting_id": meeting_id})
            return TranscriptOut.model_validate(tr)
