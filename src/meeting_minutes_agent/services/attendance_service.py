"""
Посещаемость: check-in участника (QR или вручную) и список отметок.
"""

from __future__ import annotations

import asyncio

from sqlalchemy.exc import IntegrityError

from meeting_minutes_agent.common.errors import ConflictError, NotFoundError, UnauthorizedError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import Clock, to_naive_utc, utc_now
from meeting_minutes_agent.contracts.http_api import AttendanceCheckInRequest, AttendanceOut
from meeting_minutes_agent.contracts.ws_events import ATTENDANCE_CHANGED
from meeting_minutes_agent.domain.enums import AttendanceStatus, CheckInMethod
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.models import Attendance
from meeting_minutes_agent.storage.repositories import AttendanceRepository, MeetingRepository

from .broadcast import Broadcaster

log = get_project_logger()


class AttendanceService:
    def __init__(
        self,
        *,
        session_scope: SessionScope,
        broadcaster: Broadcaster,
        clock: Clock = utc_now,
    ) -> None:
        self.session_scope = session_scope
        self.broadcaster = broadcaster
        self.clock = clock

    async def check_in(
        self, meeting_id: int, *, user_id: int, req: AttendanceCheckInRequest
    ) -> AttendanceOut:
        try:
            out = await asyncio.to_thread(self._check_in_sync, meeting_id, user_id, req)
        except IntegrityError as e:
            # гонка двух check-in: уникальный ключ (meeting_id, user_id)
            raise ConflictError(
                "Посещаемость уже отмечена", {"meeting_id": meeting_id, "user_id": user_id}
            ) from e

        log.info(
            "attendance_logged",
            extra={
                "meeting_id": meeting_id,
                "payload": {"user_id": user_id, "status": out.status.value},
            },
        )
        try:
            await self.broadcaster.publish(
                meeting_id, ATTENDANCE_CHANGED, {"attendance": out.model_dump(mode="json")}
            )
        except Exception as e:
            log.warning(
                "attendance_broadcast_failed",
                extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
            )
        return out

    def _check_in_sync(
        self, meeting_id: int, user_id: int, req: AttendanceCheckInRequest
    ) -> AttendanceOut:
        now = to_naive_utc(self.clock())
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})

            token = (req.qr_token or "").strip()
            if token and token != meeting.qr_code_token:
                raise UnauthorizedError("Неверный QR-токен", {"meeting_id": meeting_id})

            repo = AttendanceRepository(s)
            if repo.get(meeting_id, user_id) is not None:
                raise ConflictError(
                    "Посещаемость уже отмечена", {"meeting_id": meeting_id, "user_id": user_id}
                )

            record = Attendance(
                meeting_id=meeting_id,
                user_id=user_id,
                timestamp=now,
                location=req.location,
                check_in_method=CheckInMethod.qr if token else CheckInMethod.manual,
                status=(
                    AttendanceStatus.late if now > meeting.scheduled_at else AttendanceStatus.present
                ),
            )
            repo.add(record)
            return AttendanceOut.model_validate(record)

    def list(self, meeting_id: int) -> list[AttendanceOut]:
        with self.session_scope() as s:
            if MeetingRepository(s).get(meeting_id) is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            rows = AttendanceRepository(s).list_by_meeting(meeting_id)
            return [AttendanceOut.model_validate(a) for a in rows]
