from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from meeting_minutes_agent.common.errors import NotFoundError, ProviderError
from meeting_minutes_agent.domain.enums import (
    MeetingStatus,
    ProcessingStatus,
    TaskPriority,
    TaskStatus,
    UserRole,
)
from meeting_minutes_agent.storage.models import Attendance
from meeting_minutes_agent.storage.repositories import (
    AttendanceRepository,
    MeetingRepository,
    TaskRepository,
    TranscriptRepository,
)


@pytest.fixture()
def organizer(seed_user) -> int:
    return seed_user("Olga Organizer", role=UserRole.secretary)


def _with_transcript(session_scope, meeting_id: int, text: str) -> None:
    with session_scope() as s:
        TranscriptRepository(s).write_raw_text(
            meeting_id, raw_text=text, processing_status=ProcessingStatus.completed
        )


def _tasks(session_scope, meeting_id: int):
    with session_scope() as s:
        return [
            (t.title, t.assigned_to, t.deadline, t.priority, t.status)
            for t in TaskRepository(s).list_filtered(meeting_id=meeting_id)
        ]


def test_tbd_item_goes_to_organizer_with_default_deadline(
    scripted_llm, make_services, seed_meeting, organizer, session_scope
):
    llm = scripted_llm(
        {
            "abstract": "Planning",
            "key_points": ["scope"],
            "decisions": [],
            "action_items": [{"title": "Draft agenda", "assigned_to": "TBD", "deadline": None}],
        }
    )
    services = make_services(llm=llm)
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    _with_transcript(session_scope, mid, "we need an agenda")

    result = asyncio.run(services.pipeline.run(mid))

    assert result.summary_generated is True
    assert result.tickets_created == 1
    ticket = result.tickets[0]
    assert ticket.assigned_to == organizer
    assert ticket.deadline == datetime(2030, 1, 8, 10, 0)
    assert ticket.status == TaskStatus.pending
    assert ticket.priority == TaskPriority.medium

    with session_scope() as s:
        tr = TranscriptRepository(s).get_by_meeting(mid)
        assert tr.summary_text == "Planning"
        assert tr.summary_json["key_points"] == ["scope"]
        assert tr.action_items_json[0]["title"] == "Draft agenda"
        assert '"abstract": "Planning"' in tr.minutes_formatted
        assert tr.processing_status == ProcessingStatus.completed


def test_named_urgent_item_with_past_deadline(
    scripted_llm, make_services, seed_meeting, seed_user, organizer, session_scope, notifier
):
    jane = seed_user("Jane Doe", email="jane@meetgov.local")
    seed_user("Janet Other")
    llm = scripted_llm(
        {
            "abstract": "Budget",
            "action_items": [
                {
                    "title": "Urgent: fix budget",
                    "description": "numbers are off",
                    "assigned_to": "jane",
                    "deadline": "2020-01-01",
                }
            ],
        }
    )
    services = make_services(llm=llm)
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    _with_transcript(session_scope, mid, "jane fixes the budget")

    async def scenario():
        result = await services.pipeline.run(mid)
        await services.background.drain(timeout=5)
        return result

    result = asyncio.run(scenario())
    ticket = result.tickets[0]
    assert ticket.assigned_to == jane
    assert ticket.priority == TaskPriority.high
    assert ticket.status == TaskStatus.overdue
    assert ticket.deadline == datetime(2020, 1, 1)
    assert [n.assignee_email for n in notifier.sent] == ["jane@meetgov.local"]
    assert _tasks(session_scope, mid)[0][4] == TaskStatus.overdue


def test_failed_item_is_skipped_others_created(
    scripted_llm, make_services, seed_meeting, organizer, session_scope, monkeypatch
):
    llm = scripted_llm(
        {
            "abstract": "Mixed",
            "action_items": [
                {"title": "One"},
                {"title": "Broken"},
                {"title": "Three"},
            ],
        }
    )
    services = make_services(llm=llm)
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    _with_transcript(session_scope, mid, "three things to do")

    original = services.pipeline._create_ticket

    def flaky(data, item, now):
        if item.title == "Broken":
            raise RuntimeError("insert failed")
        return original(data, item, now)

    monkeypatch.setattr(services.pipeline, "_create_ticket", flaky)

    result = asyncio.run(services.pipeline.run(mid))
    assert result.tickets_created == 2
    assert result.failed_items == 1
    assert sorted(t[0] for t in _tasks(session_scope, mid)) == ["One", "Three"]


def test_zero_action_items(
    scripted_llm, make_services, seed_meeting, organizer, session_scope
):
    services = make_services(llm=scripted_llm({"abstract": "Chat", "action_items": []}))
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    _with_transcript(session_scope, mid, "just chatting")

    result = asyncio.run(services.pipeline.run(mid))
    assert result.summary_generated is True
    assert result.tickets_created == 0
    assert result.tickets == []


def test_no_transcript_is_success_without_summary(services, seed_meeting, organizer, session_scope):
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    result = asyncio.run(services.pipeline.run(mid))
    assert result.summary_generated is False
    assert result.reason == "no_transcript"

    _with_transcript(session_scope, mid, "   ")
    assert asyncio.run(services.pipeline.run(mid)).reason == "no_transcript"


def test_unknown_meeting(services):
    with pytest.raises(NotFoundError):
        asyncio.run(services.pipeline.run(4242))


def test_llm_failure_marks_transcript_failed(
    scripted_llm, make_services, seed_meeting, organizer, session_scope
):
    services = make_services(llm=scripted_llm(error=RuntimeError("timeout")))
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    _with_transcript(session_scope, mid, "text that will not be summarized")

    with pytest.raises(ProviderError):
        asyncio.run(services.pipeline.run(mid))

    with session_scope() as s:
        tr = TranscriptRepository(s).get_by_meeting(mid)
        assert tr.processing_status == ProcessingStatus.failed
        assert tr.summary_json is None
    assert _tasks(session_scope, mid) == []


def test_completion_path_skips_already_summarized(
    scripted_llm, make_services, seed_meeting, organizer, session_scope
):
    llm = scripted_llm({"abstract": "Once", "action_items": [{"title": "Only once"}]})
    services = make_services(llm=llm)
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    _with_transcript(session_scope, mid, "do it once")

    async def scenario():
        first = await services.pipeline.run(mid)
        await services.status.stop(mid)
        await services.background.drain(timeout=5)
        return first

    first = asyncio.run(scenario())
    assert first.tickets_created == 1
    assert len(_tasks(session_scope, mid)) == 1


def test_stop_triggers_pipeline_in_background(
    scripted_llm, make_services, seed_meeting, organizer, session_scope
):
    llm = scripted_llm({"abstract": "Auto", "action_items": [{"title": "Follow up"}]})
    services = make_services(llm=llm)
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    _with_transcript(session_scope, mid, "follow up next week")

    async def scenario():
        sub = await services.broadcaster.subscribe(mid)
        await services.status.stop(mid)
        await services.background.drain(timeout=5)
        events = []
        while (event := sub.get_nowait()) is not None:
            events.append(event["event_type"])
        return events

    events = asyncio.run(scenario())
    assert events == ["meeting.status_changed", "summary.generated"]
    assert [t[0] for t in _tasks(session_scope, mid)] == ["Follow up"]


def _invite(session_scope, meeting_id: int, participants: list, attendee: int) -> None:
    with session_scope() as s:
        MeetingRepository(s).get(meeting_id).participants = participants
        AttendanceRepository(s).add(Attendance(meeting_id=meeting_id, user_id=attendee))


def test_completion_email_follows_summary(
    scripted_llm, make_services, seed_meeting, seed_user, organizer, session_scope, notifier
):
    mark = seed_user("Mark Member")
    pete = seed_user("Pete Participant")
    llm = scripted_llm(
        {
            "abstract": "Auto",
            "key_points": ["budget"],
            "decisions": ["approve"],
            "action_items": [{"title": "Follow up", "assigned_to": "Mark"}],
        }
    )
    services = make_services(llm=llm)
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    _with_transcript(session_scope, mid, "mark follows up")
    _invite(session_scope, mid, [pete, "guest@city.local", "not-an-email", mark], attendee=mark)

    async def scenario():
        await services.status.stop(mid)
        await services.background.drain(timeout=5)

    asyncio.run(scenario())
    [completion] = notifier.completions
    assert completion.meeting_id == mid
    assert completion.recipients == [
        "olga.organizer@meetgov.local",
        "mark.member@meetgov.local",
        "pete.participant@meetgov.local",
        "guest@city.local",
    ]
    assert completion.abstract == "Auto"
    assert completion.key_points == ["budget"]
    assert completion.decisions == ["approve"]
    assert [(t.title, t.assignee_name, t.priority) for t in completion.tasks] == [
        ("Follow up", "Mark Member", "medium")
    ]


def test_completion_email_sent_when_summary_fails(
    scripted_llm, make_services, seed_meeting, organizer, session_scope, notifier
):
    services = make_services(llm=scripted_llm(error=ProviderError("llm_provider_error", "down")))
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    _with_transcript(session_scope, mid, "nobody will summarize this")

    async def scenario():
        await services.status.stop(mid)
        await services.background.drain(timeout=5)

    asyncio.run(scenario())
    [completion] = notifier.completions
    assert completion.recipients == ["olga.organizer@meetgov.local"]
    assert completion.abstract is None
    assert completion.tasks == []


def test_completion_email_can_be_disabled(
    make_services, settings, seed_meeting, organizer, notifier
):
    services = make_services(
        settings=settings.model_copy(
            update={"auto_summary_on_complete": False, "meeting_completion_emails": False}
        )
    )
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.status.stop(mid)
        await services.background.drain(timeout=5)

    asyncio.run(scenario())
    assert notifier.completions == []
