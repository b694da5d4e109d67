from __future__ import annotations

from meeting_minutes_agent.common.config import Settings, get_settings

from .base import Notifier
from .email.sender import SMTPEmailNotifier
from .log_notifier import LogNotifier


def build_notifier(settings: Settings | None = None) -> Notifier:
    s = settings or get_settings()
    if (s.notify_provider or "").strip().lower() == "smtp":
        return SMTPEmailNotifier(s)
    return LogNotifier()
