from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from meeting_minutes_agent.common.errors import InvalidStateError, NotFoundError
from meeting_minutes_agent.domain.enums import MeetingStatus, UserRole


@pytest.fixture()
def organizer(seed_user) -> int:
    return seed_user("Olga Organizer", role=UserRole.secretary)


def test_sweep_starts_due_meetings_once(services, seed_meeting, organizer, clock):
    due = seed_meeting(organizer, scheduled_at=clock() - timedelta(minutes=1))
    future = seed_meeting(organizer, scheduled_at=clock() + timedelta(hours=1))
    running = seed_meeting(
        organizer, status=MeetingStatus.in_progress, scheduled_at=clock() - timedelta(hours=1)
    )

    async def scenario():
        sub = await services.broadcaster.subscribe(due)
        first = await services.status.sweep()
        second = await services.status.sweep()
        events = []
        while (event := sub.get_nowait()) is not None:
            events.append(event)
        statuses = [
            (await services.status.get(mid)).status for mid in (due, future, running)
        ]
        return first, second, events, statuses

    first, second, events, statuses = asyncio.run(scenario())

    assert first.updated == [due]
    assert second.updated == []
    assert statuses == [MeetingStatus.in_progress, MeetingStatus.scheduled, MeetingStatus.in_progress]
    assert len(events) == 1
    assert events[0]["event_type"] == "meeting.status_changed"
    assert events[0]["status"] == "in-progress"
    assert events[0]["previous_status"] == "scheduled"
    assert events[0]["meeting_id"] == due


def test_sweep_boundary_includes_exact_time(services, seed_meeting, organizer, clock):
    exact = seed_meeting(organizer, scheduled_at=clock())
    result = asyncio.run(services.status.sweep())
    assert result.updated == [exact]


def test_manual_start_then_stop(services, seed_meeting, organizer):
    mid = seed_meeting(organizer)

    async def scenario():
        started = await services.status.start(mid, actor_id=organizer)
        stopped = await services.status.stop(mid, actor_id=organizer)
        await services.background.drain(timeout=5)
        return started, stopped

    started, stopped = asyncio.run(scenario())
    assert started.status == MeetingStatus.in_progress
    assert stopped.status == MeetingStatus.completed


def test_invalid_transitions(services, seed_meeting, organizer):
    scheduled = seed_meeting(organizer)
    completed = seed_meeting(organizer, status=MeetingStatus.completed)

    with pytest.raises(InvalidStateError) as exc:
        asyncio.run(services.status.stop(scheduled))
    assert exc.value.details["status"] == "scheduled"

    with pytest.raises(InvalidStateError):
        asyncio.run(services.status.start(completed))
    with pytest.raises(InvalidStateError):
        asyncio.run(services.status.cancel(completed))
    with pytest.raises(NotFoundError):
        asyncio.run(services.status.start(9999))

    assert asyncio.run(services.status.get(scheduled)).status == MeetingStatus.scheduled


def test_rescheduled_meeting_is_not_swept(services, seed_meeting, organizer, clock):
    mid = seed_meeting(organizer, scheduled_at=clock() - timedelta(minutes=5))

    async def scenario():
        await services.status.reschedule(mid)
        return await services.status.sweep()

    result = asyncio.run(scenario())
    assert result.updated == []
    assert asyncio.run(services.status.get(mid)).status == MeetingStatus.rescheduled


def test_stop_notifies_completion_listeners(make_services, settings, seed_meeting, organizer):
    services = make_services(settings=settings.model_copy(update={"auto_summary_on_complete": False}))
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    seen: list[int] = []

    async def listener(snapshot):
        seen.append(snapshot.id)

    services.status.add_completion_listener(listener)

    async def scenario():
        await services.status.stop(mid)
        await services.background.drain(timeout=5)

    asyncio.run(scenario())
    assert seen == [mid]


def test_concurrent_stops_apply_once(services, seed_meeting, organizer):
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        results = await asyncio.gather(
            services.status.stop(mid), services.status.stop(mid), return_exceptions=True
        )
        await services.background.drain(timeout=5)
        return results

    results = asyncio.run(scenario())
    assert sum(1 for r in results if isinstance(r, InvalidStateError)) == 1
    assert sum(1 for r in results if not isinstance(r, Exception)) == 1


def test_sweep_isolates_failing_meeting(services, seed_meeting, organizer, clock, monkeypatch):
    first = seed_meeting(organizer, scheduled_at=clock() - timedelta(minutes=3))
    broken = seed_meeting(organizer, scheduled_at=clock() - timedelta(minutes=2))
    last = seed_meeting(organizer, scheduled_at=clock() - timedelta(minutes=1))
    apply_sync = services.status._apply_sync

    def flaky_apply(meeting_id, rule):
        if meeting_id == broken:
            raise RuntimeError("row locked")
        return apply_sync(meeting_id, rule)

    monkeypatch.setattr(services.status, "_apply_sync", flaky_apply)

    async def scenario():
        result = await services.status.sweep()
        statuses = {mid: (await services.status.get(mid)).status for mid in (first, broken, last)}
        return result, statuses

    result, statuses = asyncio.run(scenario())

    assert sorted(result.updated) == sorted([first, last])
    assert result.failed == [broken]
    assert result.skipped == []
    assert statuses[first] == MeetingStatus.in_progress
    assert statuses[broken] == MeetingStatus.scheduled
    assert statuses[last] == MeetingStatus.in_progress
