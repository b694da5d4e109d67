"""
Сервис статусов встречи (машина состояний + периодический sweep).

Назначение:
- start / stop / cancel / reschedule по таблице переходов domain.state_machine
- sweep: scheduled-встречи, время которых наступило -> in-progress
- broadcast meeting.status_changed после каждого успешного перехода
- completion listeners (auto-summary) запускаются в фоне после stop

Гарантии:
- проверка текущего статуса и запись нового - один UPDATE ... WHERE status IN (...)
- переходы одной встречи в процессе сериализованы (KeyedLock), поэтому
  broadcast статусов идут в порядке переходов
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime

from meeting_minutes_agent.common.errors import InvalidStateError, NotFoundError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.metrics import record_transition
from meeting_minutes_agent.common.time import Clock, iso_or_none, to_naive_utc, utc_now
from meeting_minutes_agent.contracts.ws_events import MEETING_STATUS_CHANGED
from meeting_minutes_agent.domain.enums import MeetingStatus
from meeting_minutes_agent.domain.state_machine import MeetingAction, TransitionRule, rule_for
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.models import Meeting
from meeting_minutes_agent.storage.repositories import MeetingRepository

from .background import BackgroundRunner
from .broadcast import Broadcaster
from .locks import KeyedLock

log = get_project_logger()


@dataclass
class MeetingSnapshot:
    """
    Состояние встречи, отвязанное от ORM-сессии.
    """

    id: int
    title: str
    status: MeetingStatus
    scheduled_at: datetime
    organizer_id: int
    transcript_id: int | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, m: Meeting) -> MeetingSnapshot:
        return cls(
            id=m.id,
            title=m.title,
            status=MeetingStatus(m.status),
            scheduled_at=m.scheduled_at,
            organizer_id=m.organizer_id,
            transcript_id=m.transcript_id,
            updated_at=m.updated_at,
        )


@dataclass
class SweepResult:
    updated: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


CompletionListener = Callable[[MeetingSnapshot], Awaitable[None]]


class MeetingStatusService:
    def __init__(
        self,
        *,
        session_scope: SessionScope,
        broadcaster: Broadcaster,
        background: BackgroundRunner,
        clock: Clock = utc_now,
    ) -> None:
        self.session_scope = session_scope
        self.broadcaster = broadcaster
        self.background = background
        self.clock = clock
        self._locks = KeyedLock()
        self._completion_listeners: list[CompletionListener] = []

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._completion_listeners.append(listener)

    # =========================================================================
    # ПУБЛИЧНЫЕ ОПЕРАЦИИ
    # =========================================================================
    async def get(self, meeting_id: int) -> MeetingSnapshot:
        return await asyncio.to_thread(self._load_snapshot, meeting_id)

    async def start(self, meeting_id: int, *, actor_id: int | None = None) -> MeetingSnapshot:
        return await self._transition(
            meeting_id, MeetingAction.start, source="manual", actor_id=actor_id
        )

    async def stop(self, meeting_id: int, *, actor_id: int | None = None) -> MeetingSnapshot:
        snapshot = await self._transition(
            meeting_id, MeetingAction.stop, source="manual", actor_id=actor_id
        )
        self._notify_completed(snapshot)
        return snapshot

    async def cancel(self, meeting_id: int, *, actor_id: int | None = None) -> MeetingSnapshot:
        return await self._transition(
            meeting_id, MeetingAction.cancel, source="admin", actor_id=actor_id
        )

    async def reschedule(self, meeting_id: int, *, actor_id: int | None = None) -> MeetingSnapshot:
        return await self._transition(
            meeting_id, MeetingAction.reschedule, source="admin", actor_id=actor_id
        )

    async def sweep(self) -> SweepResult:
        """
        Один проход: все scheduled-встречи с datetime <= now -> in-progress.
        Ошибка по одной встрече не прерывает остальные.
        """
        now = to_naive_utc(self.clock())
        due_ids = await asyncio.to_thread(self._list_due_ids, now)
        result = SweepResult()
        for meeting_id in due_ids:
            try:
                await self._transition(meeting_id, MeetingAction.sweep_start, source="sweep")
            except (InvalidStateError, NotFoundError):
                # встречу успели перевести/удалить между выборкой и переходом
                result.skipped.append(meeting_id)
            except Exception as e:
                result.failed.append(meeting_id)
                log.error(
                    "status_sweep_item_failed",
                    extra={"meeting_id": meeting_id, "payload": {"err": str(e)[:200]}},
                )
            else:
                result.updated.append(meeting_id)

        if due_ids:
            log.info(
                "status_sweep_done",
                extra={
                    "payload": {
                        "updated": len(result.updated),
                        "skipped": len(result.skipped),
                        "failed": len(result.failed),
                    }
                },
            )
        return result

    # =========================================================================
    # ПЕРЕХОД
    # =========================================================================
    async def _transition(
        self,
        meeting_id: int,
        action: MeetingAction,
        *,
        source: str,
        actor_id: int | None = None,
    ) -> MeetingSnapshot:
        rule = rule_for(action)
        async with self._locks.hold(meeting_id):
            try:
                previous, snapshot = await asyncio.to_thread(self._apply_sync, meeting_id, rule)
            except InvalidStateError:
                record_transition(source=source, to_status=rule.target.value, ok=False)
                raise

            record_transition(source=source, to_status=rule.target.value, ok=True)
            log.info(
                "meeting_status_changed",
                extra={
                    "meeting_id": meeting_id,
                    "payload": {
                        "action": action.value,
                        "from": previous.value,
                        "to": snapshot.status.value,
                        "source": source,
                        "actor_id": actor_id,
                    },
                },
            )
            await self._publish_status(snapshot, previous=previous, source=source)
        return snapshot

    def _apply_sync(
        self, meeting_id: int, rule: TransitionRule
    ) -> tuple[MeetingStatus, MeetingSnapshot]:
        now = to_naive_utc(self.clock())
        with self.session_scope() as s:
            repo = MeetingRepository(s)
            meeting = repo.get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            previous = MeetingStatus(meeting.status)

            applied = repo.compare_and_set_status(
                meeting_id,
                allowed_from=rule.allowed_from,
                new_status=rule.target,
                now=now,
            )
            s.refresh(meeting)
            if not applied:
                current = MeetingStatus(meeting.status)
                raise InvalidStateError(
                    f"Нельзя выполнить {rule.action.value} из статуса {current.value}",
                    {
                        "meeting_id": meeting_id,
                        "action": rule.action.value,
                        "status": current.value,
                    },
                )
            return previous, MeetingSnapshot.from_model(meeting)

    async def _publish_status(
        self, snapshot: MeetingSnapshot, *, previous: MeetingStatus, source: str
    ) -> None:
        try:
            await self.broadcaster.publish(
                snapshot.id,
                MEETING_STATUS_CHANGED,
                {
                    "status": snapshot.status.value,
                    "previous_status": previous.value,
                    "title": snapshot.title,
                    "source": source,
                    "updated_at": iso_or_none(snapshot.updated_at),
                },
            )
        except Exception as e:
            # доставка best-effort: переход уже зафиксирован
            log.warning(
                "status_broadcast_failed",
                extra={"meeting_id": snapshot.id, "payload": {"err": str(e)[:200]}},
            )

    def _notify_completed(self, snapshot: MeetingSnapshot) -> None:
        for listener in self._completion_listeners:
            self.background.spawn(
                listener(snapshot), kind="meeting_completed", meeting_id=snapshot.id
            )

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================
    def _load_snapshot(self, meeting_id: int) -> MeetingSnapshot:
        with self.session_scope() as s:
            meeting = MeetingRepository(s).get(meeting_id)
            if meeting is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": meeting_id})
            return MeetingSnapshot.from_model(meeting)

    def _list_due_ids(self, now: datetime) -> list[int]:
        with self.session_scope() as s:
            return [m.id for m in MeetingRepository(s).list_due_scheduled(now)]
