"""
Контракты WebSocket-событий (runtime, Python-описание).

Зачем:
- единая точка, чтобы не разъезжались названия событий
- облегчает валидацию и поддержку версий
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .versions import WS_SCHEMA_VERSION

# =============================================================================
# ТИПЫ СОБЫТИЙ
# =============================================================================
MEETING_STATUS_CHANGED = "meeting.status_changed"
ATTENDANCE_CHANGED = "attendance.changed"
TRANSCRIPT_INCREMENT = "transcript.increment"
SUMMARY_GENERATED = "summary.generated"

MEETING_JOIN = "meeting.join"
MEETING_LEAVE = "meeting.leave"
AUDIO_CHUNK = "audio.chunk"
AUDIO_ACK = "audio.ack"
ERROR = "error"

BroadcastEventType = Literal[
    "meeting.status_changed",
    "attendance.changed",
    "transcript.increment",
    "summary.generated",
]


# =============================================================================
# ВХОД: audio.chunk (client -> server)
# =============================================================================
@dataclass
class AudioChunkEvent:
    meeting_id: int
    content_b64: str
    mime_type: str = "audio/webm"
    schema_version: str = WS_SCHEMA_VERSION


# =============================================================================
# ВЫХОД: error (server -> client)
# =============================================================================
@dataclass
class ErrorEvent:
    code: str
    message: str
    event_type: str = ERROR
    schema_version: str = WS_SCHEMA_VERSION


def envelope(event_type: str, meeting_id: int, payload: dict, timestamp_ms: int) -> dict:
    """
    Конверт broadcast-события: payload (плоско) + служебные поля поверх.
    """
    return {
        **payload,
        "schema_version": WS_SCHEMA_VERSION,
        "event_type": event_type,
        "meeting_id": meeting_id,
        "timestamp_ms": timestamp_ms,
    }
