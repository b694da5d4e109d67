"""
Сидинг тестовых пользователей и встречи в БД.
Используется для ручных проверок и dev-отладки (API пользователей не создаёт).
"""

from __future__ import annotations

from datetime import timedelta

from meeting_minutes_agent.common.time import utc_naive
from meeting_minutes_agent.common.utils import new_qr_token
from meeting_minutes_agent.domain.enums import MeetingStatus, UserRole
from meeting_minutes_agent.storage.db import db_session, init_db
from meeting_minutes_agent.storage.models import Meeting, User


def main() -> int:
    init_db()
    with db_session() as s:
        admin = User(name="Admin User", email="admin@meetgov.local", role=UserRole.admin)
        secretary = User(name="Jane Secretary", email="jane@meetgov.local", role=UserRole.secretary)
        s.add_all([admin, secretary])
        s.flush()

        m = Meeting(
            title="Weekly planning",
            scheduled_at=utc_naive() + timedelta(minutes=5),
            status=MeetingStatus.scheduled,
            organizer_id=admin.id,
            participants=[admin.id, secretary.id],
            qr_code_token=new_qr_token(),
        )
        s.add(m)
        s.flush()
        print("Seeded users:", admin.id, secretary.id)
        print("Seeded meeting:", m.id, "qr:", m.qr_code_token)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
