"""
Утилиты времени.

Назначение:
- единый источник "сейчас" (UTC)
- в БД храним naive UTC (DateTime без tz), поэтому есть utc_naive()
- миллисекунды для realtime таймстампов
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """
    Текущее время в UTC (aware datetime).
    """
    return datetime.now(UTC)


def utc_naive() -> datetime:
    """
    Текущее время в UTC без tzinfo - формат колонок БД.
    """
    return utc_now().replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Aware -> naive UTC; naive считаем уже UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def utc_ms() -> int:
    """
    Текущее время в UTC в миллисекундах (int).
    """
    return int(utc_now().timestamp() * 1000)


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
