"""
Машина состояний встречи.

Назначение:
- централизованная таблица допустимых переходов статуса Meeting
- предсказуемые отказы (InvalidStateError) вместо молчаливой перезаписи

Терминальные состояния: completed, cancelled.
rescheduled достижим, но обратного пути в scheduled нет.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .enums import MeetingStatus


class MeetingAction(str, enum.Enum):
    """
    Действия, меняющие статус встречи.
    """

    start = "start"
    sweep_start = "sweep_start"
    stop = "stop"
    cancel = "cancel"
    reschedule = "reschedule"


TERMINAL_STATUSES: frozenset[MeetingStatus] = frozenset(
    {MeetingStatus.completed, MeetingStatus.cancelled}
)

_NON_TERMINAL: frozenset[MeetingStatus] = frozenset(set(MeetingStatus) - TERMINAL_STATUSES)


# =============================================================================
# ТАБЛИЦА ПЕРЕХОДОВ
# =============================================================================
_TRANSITIONS: dict[MeetingAction, tuple[frozenset[MeetingStatus], MeetingStatus]] = {
    # ручной старт запрещён только из терминальных состояний
    MeetingAction.start: (_NON_TERMINAL, MeetingStatus.in_progress),
    # sweep трогает только scheduled, иначе повторный прогон не идемпотентен
    MeetingAction.sweep_start: (frozenset({MeetingStatus.scheduled}), MeetingStatus.in_progress),
    MeetingAction.stop: (frozenset({MeetingStatus.in_progress}), MeetingStatus.completed),
    MeetingAction.cancel: (_NON_TERMINAL, MeetingStatus.cancelled),
    MeetingAction.reschedule: (_NON_TERMINAL, MeetingStatus.rescheduled),
}


@dataclass(frozen=True)
class TransitionRule:
    action: MeetingAction
    allowed_from: frozenset[MeetingStatus]
    target: MeetingStatus

    def permits(self, current: MeetingStatus) -> bool:
        return current in self.allowed_from


def rule_for(action: MeetingAction) -> TransitionRule:
    allowed_from, target = _TRANSITIONS[action]
    return TransitionRule(action=action, allowed_from=allowed_from, target=target)


def is_terminal(status: MeetingStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_apply(action: MeetingAction, current: MeetingStatus) -> bool:
    return rule_for(action).permits(current)
