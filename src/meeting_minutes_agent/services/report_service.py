"""
PDF-отчёт по встрече.

Содержимое: сведения о встрече, посещаемость, резюме, ключевые пункты,
решения, задачи. Текст собирается построчно, затем рисуется на A4
стандартным шрифтом reportlab.
"""

from __future__ import annotations

import io
import textwrap
from dataclasses import dataclass
from typing import Any

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from meeting_minutes_agent.common.errors import NotFoundError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import Clock, utc_now
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.repositories import (
    AttendanceRepository,
    MeetingRepository,
    TaskRepository,
    TranscriptRepository,
    UserRepository,
)

log = get_project_logger()

LINE_WIDTH = 95
LINE_HEIGHT = 14
MARGIN = 40


@dataclass
class MeetingReport:
    meeting_id: int
    filename: str
    content: bytes


def _value(v: Any) -> str:
    return str(getattr(v, "value", v))


def _section(title: str, items: list[str]) -> list[str]:
    return ["", title] + ([f"- {item}" for item in items] or ["- n/a"])


def build_report_lines(
    *,
    meeting: dict[str, Any],
    attendance: list[str],
    summary: dict[str, Any],
    abstract: str | None,
    tasks: list[str],
    generated_at: str,
) -> list[str]:
    lines = [
        f"Meeting report: {meeting['title']}",
        "",
        f"Date: {meeting['scheduled_at']}",
        f"Location: {meeting.get('location') or 'n/a'}",
        f"Status: {meeting['status']}",
        f"Organizer: {meeting['organizer']}",
    ]
    if meeting.get("description"):
        lines.append(f"Description: {meeting['description']}")
    lines.extend(_section(f"Attendance ({len(attendance)})", attendance))
    lines.extend(["", "Summary", abstract or "n/a"])
    lines.extend(_section("Key points", [str(p) for p in summary.get("key_points") or []]))
    lines.extend(_section("Decisions", [str(d) for d in summary.get("decisions") or []]))
    lines.extend(_section("Action items", tasks))
    lines.extend(["", f"Generated at {generated_at}"])
    return lines


def render_pdf(lines: list[str]) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    _, height = A4
    y = height - MARGIN
    for line in lines:
        for chunk in textwrap.wrap(line, LINE_WIDTH) or [""]:
            if y < MARGIN:
                c.showPage()
                y = height - MARGIN
            c.drawString(MARGIN, y, chunk)
            y -= LINE_HEIGHT
    c.save()
    return buf.getvalue()


class ReportService:
    def __init__(self, *, session_scope: SessionScope, clock: Clock = utc_now) -> None:
        self.session_scope = session_scope
        self.clock = clock

    def meeting_report(self, meeting_id: int) -> MeetingReport:
        lines = self._collect(meeting_id)
        content = render_pdf(lines)
        log.info(
            "meeting_report_generated",
            extra={"meeting_id": meeting_id, "payload": {"bytes": len(content)}},
        )
        return MeetingReport(
            meeting_id=meeting_id,
            filename=f"meeting-{meeting_id}-report.pdf",
            content=content,
        )

    def _collect(self, meeting_id: int) -> list[str]:
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            users = UserRepository(s)
            records = AttendanceRepository(s).list_by_meeting(meeting_id)
            tasks = TaskRepository(s).list_filtered(meeting_id=meeting_id, limit=500)
            names = {
                u.id: u.name
                for u in users.list_by_ids(
                    [meeting.organizer_id]
                    + [r.user_id for r in records]
                    + [t.assigned_to for t in tasks]
                )
            }
            tr = TranscriptRepository(s).get_by_meeting(meeting_id)

            return build_report_lines(
                meeting={
                    "title": meeting.title,
                    "description": meeting.description,
                    "location": meeting.location,
                    "scheduled_at": meeting.scheduled_at.strftime("%Y-%m-%d %H:%M"),
                    "status": _value(meeting.status),
                    "organizer": names.get(meeting.organizer_id, f"user {meeting.organizer_id}"),
                },
                attendance=[
                    f"{names.get(r.user_id, f'user {r.user_id}')} "
                    f"({_value(r.status)}, {_value(r.check_in_method)}, "
                    f"{r.timestamp.strftime('%H:%M')})"
                    for r in records
                ],
                summary=(tr.summary_json or {}) if tr is not None else {},
                abstract=tr.summary_text if tr is not None else None,
                tasks=[
                    f"{t.title} -> {names.get(t.assigned_to, f'user {t.assigned_to}')}, "
                    f"due {t.deadline.strftime('%Y-%m-%d')}, "
                    f"{_value(t.priority)}, {_value(t.status)}"
                    for t in tasks
                ],
                generated_at=self.clock().strftime("%Y-%m-%d %H:%M UTC"),
            )
