from __future__ import annotations

import json
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from meeting_minutes_agent.common.config import get_settings
from meeting_minutes_agent.delivery.base import DeliveryResult, MeetingCompletion, TaskAssignment
from meeting_minutes_agent.domain.enums import MeetingStatus, UserRole
from meeting_minutes_agent.llm.base import LLMProvider
from meeting_minutes_agent.services.broadcast import InMemoryBroadcaster
from meeting_minutes_agent.services.container import build_container
from meeting_minutes_agent.storage.db import build_engine, build_session_scope, init_db
from meeting_minutes_agent.storage.models import Meeting, User
from meeting_minutes_agent.stt.base import STTResult

T0 = datetime(2030, 1, 1, 10, 0, tzinfo=UTC)


class FixedClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class ScriptedSTT:
    """
    audio bytes -> текст. Значение может быть строкой, (строка, задержка) или исключением.
    """

    def __init__(self, script: dict[bytes, object] | None = None) -> None:
        self.script = dict(script or {})
        self.calls: list[bytes] = []

    def transcribe(self, *, audio: bytes, mime_type: str | None = None) -> STTResult:
        self.calls.append(audio)
        value = self.script.get(audio, "")
        if isinstance(value, Exception):
            raise value
        if isinstance(value, tuple):
            value, delay = value
            time.sleep(delay)
        return STTResult(text=str(value))


class ScriptedLLM(LLMProvider):
    def __init__(self, structured: dict | None = None, *, error: Exception | None = None) -> None:
        self.structured = structured if structured is not None else {
            "abstract": "Short meeting",
            "key_points": ["point"],
            "decisions": [],
            "action_items": [],
        }
        self.error = error
        self.calls: list[str] = []

    def complete_text(self, *, system: str, user: str, json_mode: bool = False) -> str:
        self.calls.append(system)
        if self.error is not None:
            raise self.error
        if "keyPoints" in system:
            return json.dumps(
                {"keyPoints": ["live"], "decisions": [], "sentiment": "positive", "insights": "ok"}
            )
        return json.dumps(self.structured)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[TaskAssignment] = []
        self.reminders: list[TaskAssignment] = []
        self.completions: list[MeetingCompletion] = []
        self.fail_with: str | None = None

    def _result(self) -> DeliveryResult:
        if self.fail_with is not None:
            return DeliveryResult(ok=False, provider="recording", error=self.fail_with)
        return DeliveryResult(ok=True, provider="recording")

    def notify_task_assigned(self, assignment: TaskAssignment) -> DeliveryResult:
        self.sent.append(assignment)
        return self._result()

    def notify_task_reminder(self, reminder: TaskAssignment) -> DeliveryResult:
        self.reminders.append(reminder)
        return self._result()

    def notify_meeting_completed(self, completion: MeetingCompletion) -> DeliveryResult:
        self.completions.append(completion)
        return self._result()


@pytest.fixture()
def settings():
    return get_settings().model_copy(
        update={
            "status_sweep_enabled": False,
            "auto_summary_on_complete": True,
            "broadcast_backend": "memory",
            "llm_retries": 0,
            "llm_retry_backoff_ms": 0,
            "live_summary_interval_sec": 30,
            "live_summary_min_chars": 1000,
            "live_summary_placeholder_chars": 50,
            "task_default_deadline_days": 7,
        }
    )


@pytest.fixture()
def session_scope(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'meetings.db'}")
    init_db(engine)
    try:
        yield build_session_scope(engine)
    finally:
        engine.dispose()


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def stt() -> ScriptedSTT:
    return ScriptedSTT()


@pytest.fixture()
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def make_services(settings, session_scope, clock, stt, llm, notifier) -> Callable:
    def _make(**overrides):
        kwargs = {
            "settings": settings,
            "session_scope": session_scope,
            "stt": stt,
            "llm": llm,
            "notifier": notifier,
            "broadcaster": InMemoryBroadcaster(queue_size=64),
            "clock": clock,
        }
        kwargs.update(overrides)
        return build_container(**kwargs)

    return _make


@pytest.fixture()
def services(make_services):
    return make_services()


@pytest.fixture()
def seed_user(session_scope) -> Callable[..., int]:
    def _seed(name: str, email: str | None = None, role: UserRole = UserRole.official) -> int:
        with session_scope() as s:
            user = User(
                name=name,
                email=email or f"{name.lower().replace(' ', '.')}@meetgov.local",
                role=role,
            )
            s.add(user)
            s.flush()
            return user.id

    return _seed


@pytest.fixture()
def seed_meeting(session_scope, clock) -> Callable[..., int]:
    def _seed(
        organizer_id: int,
        *,
        status: MeetingStatus = MeetingStatus.scheduled,
        scheduled_at: datetime | None = None,
        title: str = "Budget review",
        qr_code_token: str | None = None,
    ) -> int:
        when = scheduled_at or clock() + timedelta(hours=1)
        with session_scope() as s:
            meeting = Meeting(
                title=title,
                scheduled_at=when.astimezone(UTC).replace(tzinfo=None),
                status=status,
                organizer_id=organizer_id,
                participants=[],
                qr_code_token=qr_code_token,
            )
            s.add(meeting)
            s.flush()
            return meeting.id

    return _seed


@pytest.fixture()
def scripted_llm() -> type[ScriptedLLM]:
    return ScriptedLLM
