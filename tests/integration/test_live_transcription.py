from __future__ import annotations

import asyncio
import logging

import pytest

from meeting_minutes_agent.common.errors import (
    AlreadyActiveError,
    InvalidStateError,
    SessionNotFoundError,
)
from meeting_minutes_agent.domain.enums import MeetingStatus, ProcessingStatus, UserRole
from meeting_minutes_agent.services.summarization_service import PLACEHOLDER_INSIGHTS
from meeting_minutes_agent.storage.repositories import TranscriptRepository


@pytest.fixture()
def organizer(seed_user) -> int:
    return seed_user("Sam Secretary", role=UserRole.secretary)


def _transcript(session_scope, meeting_id):
    with session_scope() as s:
        tr = TranscriptRepository(s).get_by_meeting(meeting_id)
        return tr.raw_text, tr.processing_status


def test_chunks_accumulate_and_stop_completes_meeting(
    services, stt, seed_meeting, organizer, session_scope
):
    stt.script = {b"c1": "hello", b"c2": "", b"c3": "world"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        r1 = await services.live.ingest_chunk(mid, b"c1", "audio/webm")
        r2 = await services.live.ingest_chunk(mid, b"c2", "audio/webm")
        r3 = await services.live.ingest_chunk(mid, b"c3", "audio/webm")
        stopped = await services.live.stop(mid)
        status = await services.live.status(mid)
        await services.background.drain(timeout=5)
        return r1, r2, r3, stopped, status

    r1, r2, r3, stopped, status = asyncio.run(scenario())

    assert (r1.transcribed, r1.accumulated_length) == ("hello", 5)
    assert r1.summary is not None
    assert r1.summary.insights == PLACEHOLDER_INSIGHTS
    assert (r2.transcribed, r2.summary, r2.accumulated_length) == ("", None, 5)
    assert (r3.transcribed, r3.accumulated_length) == ("world", 11)
    assert r3.summary is None

    assert stopped.final_length == 11
    assert stopped.meeting_status == MeetingStatus.completed
    assert status.is_active is False
    assert status.transcript_id == stopped.transcript_id

    text, processing = _transcript(session_scope, mid)
    assert text == "hello world"
    assert processing == ProcessingStatus.completed


def test_out_of_order_stt_latency_keeps_arrival_order(
    services, stt, seed_meeting, organizer, session_scope
):
    stt.script = {b"slow": ("first", 0.2), b"fast": "second"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        results = await asyncio.gather(
            services.live.ingest_chunk(mid, b"slow"),
            services.live.ingest_chunk(mid, b"fast"),
        )
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return results

    slow, fast = asyncio.run(scenario())
    assert slow.accumulated_length == len("first")
    assert fast.accumulated_length == len("first second")
    assert _transcript(session_scope, mid)[0] == "first second"


def test_stt_failure_on_chunk_is_empty_result(services, stt, seed_meeting, organizer):
    stt.script = {b"bad": RuntimeError("engine down"), b"ok": "fine"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        bad = await services.live.ingest_chunk(mid, b"bad")
        ok = await services.live.ingest_chunk(mid, b"ok")
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return bad, ok

    bad, ok = asyncio.run(scenario())
    assert (bad.transcribed, bad.accumulated_length) == ("", 0)
    assert (ok.transcribed, ok.accumulated_length) == ("fine", 4)


def test_empty_audio_does_not_call_stt(services, stt, seed_meeting, organizer):
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        result = await services.live.ingest_chunk(mid, b"")
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return result

    result = asyncio.run(scenario())
    assert result.transcribed == ""
    assert stt.calls == []


def test_second_start_is_already_active(services, seed_meeting, organizer):
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        results = await asyncio.gather(
            services.live.start(mid), services.live.start(mid), return_exceptions=True
        )
        again = None
        try:
            await services.live.start(mid)
        except AlreadyActiveError as e:
            again = e
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return results, again

    results, again = asyncio.run(scenario())
    assert sum(1 for r in results if isinstance(r, AlreadyActiveError)) == 1
    assert again is not None


def test_chunk_and_stop_without_session(services, seed_meeting, organizer):
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    with pytest.raises(SessionNotFoundError):
        asyncio.run(services.live.ingest_chunk(mid, b"x"))
    with pytest.raises(SessionNotFoundError):
        asyncio.run(services.live.stop(mid))


def test_start_auto_starts_scheduled_meeting(services, seed_meeting, organizer):
    mid = seed_meeting(organizer)

    async def scenario():
        sub = await services.broadcaster.subscribe(mid)
        started = await services.live.start(mid)
        snapshot = await services.status.get(mid)
        event = sub.get_nowait()
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return started, snapshot, event

    started, snapshot, event = asyncio.run(scenario())
    assert started.status == "started"
    assert snapshot.status == MeetingStatus.in_progress
    assert event["event_type"] == "meeting.status_changed"


def test_start_rejected_for_finished_meeting(services, seed_meeting, organizer):
    mid = seed_meeting(organizer, status=MeetingStatus.completed)
    with pytest.raises(InvalidStateError):
        asyncio.run(services.live.start(mid))
    assert services.live.is_active(mid) is False


def test_restart_resumes_stored_text(services, stt, seed_meeting, organizer, session_scope):
    stt.script = {b"a": "part one", b"b": "part two"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        await services.live.ingest_chunk(mid, b"a")
        await services.background.drain(timeout=5)
        # сессия потеряна (рестарт процесса): новая сессия подхватывает сохранённый текст
        services.live._sessions.clear()
        await services.live.start(mid)
        second = await services.live.ingest_chunk(mid, b"b")
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return second

    second = asyncio.run(scenario())
    assert second.accumulated_length == len("part one part two")
    assert _transcript(session_scope, mid)[0] == "part one part two"


def test_interim_summary_policy(services, stt, llm, seed_meeting, organizer, clock):
    long_text = "x" * 60
    stt.script = {b"1": long_text, b"2": "more", b"3": "again"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        first = await services.live.ingest_chunk(mid, b"1")
        clock.advance(10)
        second = await services.live.ingest_chunk(mid, b"2")
        clock.advance(31)
        third = await services.live.ingest_chunk(mid, b"3")
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first.summary is not None and first.summary.key_points == ["live"]
    assert second.summary is None
    assert third.summary is not None


def test_increment_broadcast_carries_sequence(services, stt, seed_meeting, organizer):
    stt.script = {b"a": "alpha", b"b": "beta"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        sub = await services.broadcaster.subscribe(mid)
        await services.live.ingest_chunk(mid, b"a")
        await services.live.ingest_chunk(mid, b"b")
        events = []
        while (event := sub.get_nowait()) is not None:
            events.append(event)
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return events

    events = asyncio.run(scenario())
    increments = [e for e in events if e["event_type"] == "transcript.increment"]
    assert [(e["text"], e["sequence"]) for e in increments] == [("alpha", 0), ("beta", 1)]
    assert increments[1]["accumulated_length"] == len("alpha beta")


def test_start_during_stop_is_rejected(services, stt, seed_meeting, organizer, session_scope):
    stt.script = {b"tail": ("tail words", 0.3)}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        chunk = asyncio.create_task(services.live.ingest_chunk(mid, b"tail"))
        await asyncio.sleep(0.05)
        stopping = asyncio.create_task(services.live.stop(mid))
        await asyncio.sleep(0.05)
        with pytest.raises(AlreadyActiveError):
            await services.live.start(mid)
        await chunk
        stopped = await stopping
        with pytest.raises(InvalidStateError):
            await services.live.start(mid)
        await services.background.drain(timeout=5)
        return stopped

    stopped = asyncio.run(scenario())
    assert stopped.meeting_status == MeetingStatus.completed
    assert services.live.is_active(mid) is False
    assert _transcript(session_scope, mid) == ("tail words", ProcessingStatus.completed)


def test_flush_failure_is_logged_and_stop_writes_full_buffer(
    services, stt, seed_meeting, organizer, session_scope, monkeypatch, caplog
):
    stt.script = {b"a": "first", b"b": "second"}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)
    write_text = services.live._write_text

    def failing_flush(meeting_id, text, status):
        if status == ProcessingStatus.processing:
            raise RuntimeError("db unavailable")
        return write_text(meeting_id, text, status)

    monkeypatch.setattr(services.live, "_write_text", failing_flush)
    caplog.set_level(logging.ERROR, logger="meeting-minutes-agent")

    async def scenario():
        await services.live.start(mid)
        first = await services.live.ingest_chunk(mid, b"a")
        await services.background.drain(timeout=5)
        second = await services.live.ingest_chunk(mid, b"b")
        await services.background.drain(timeout=5)
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.transcribed == "first"
    assert second.accumulated_length == len("first second")

    failures = [r for r in caplog.records if r.msg == "background_task_failed"]
    assert failures
    assert all(r.payload["kind"] == "live_flush" for r in failures)
    assert _transcript(session_scope, mid) == ("first second", ProcessingStatus.completed)


def test_interim_summary_failure_keeps_transcribed_text(
    services, stt, llm, seed_meeting, organizer
):
    llm.error = RuntimeError("llm down")
    long_text = "y" * 80
    stt.script = {b"a": long_text}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        result = await services.live.ingest_chunk(mid, b"a")
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return result

    result = asyncio.run(scenario())
    assert result.transcribed == long_text
    assert result.summary is None
    assert result.accumulated_length == len(long_text)
    assert llm.calls


def test_interim_summary_on_buffer_size_within_interval(
    services, stt, llm, seed_meeting, organizer, clock
):
    stt.script = {b"1": "z" * 60, b"2": "short", b"3": "w" * 1000}
    mid = seed_meeting(organizer, status=MeetingStatus.in_progress)

    async def scenario():
        await services.live.start(mid)
        first = await services.live.ingest_chunk(mid, b"1")
        clock.advance(5)
        second = await services.live.ingest_chunk(mid, b"2")
        clock.advance(5)
        third = await services.live.ingest_chunk(mid, b"3")
        await services.live.stop(mid)
        await services.background.drain(timeout=5)
        return first, second, third

    first, second, third = asyncio.run(scenario())
    assert first.summary is not None
    assert second.summary is None
    assert third.accumulated_length > 1000
    assert third.summary is not None and third.summary.key_points == ["live"]
    assert len([c for c in llm.calls if "keyPoints" in c]) == 2
