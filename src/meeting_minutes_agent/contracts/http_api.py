"""
HTTP API контракты (Pydantic-модели).

Назначение:
- валидация входа/выхода на уровне FastAPI
- стабильные структуры для клиентов
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from meeting_minutes_agent.domain.enums import (
    AttendanceStatus,
    CheckInMethod,
    MeetingStatus,
    ProcessingStatus,
    TaskPriority,
    TaskStatus,
)

from .versions import HTTP_API_VERSION


# =============================================================================
# ЗАПРОСЫ
# =============================================================================
class MeetingCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    location: str | None = None
    scheduled_at: datetime = Field(alias="datetime")
    participants: list[Any] = Field(default_factory=list)


class MeetingUpdateRequest(BaseModel):
    # статус меняется только переходами машины состояний
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    location: str | None = None
    scheduled_at: datetime | None = Field(default=None, alias="datetime")
    participants: list[Any] | None = None


class MeetingStatusUpdateRequest(BaseModel):
    # остальные переходы - через /start, /stop и live-транскрипцию
    status: Literal["cancelled", "rescheduled"]


class AudioChunkRequest(BaseModel):
    audio_data: str = ""  # base64 (допускается data-URL префикс)
    mime_type: str = Field(default="audio/webm", alias="mimeType")

    model_config = ConfigDict(populate_by_name=True)


class AttendanceCheckInRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    qr_token: str | None = Field(default=None, alias="qrToken")
    location: str | None = None


class TaskCreateRequest(BaseModel):
    meeting_id: int
    assigned_to: int
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    deadline: datetime
    priority: TaskPriority = TaskPriority.medium


class TaskUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    deadline: datetime | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None


# =============================================================================
# ОТВЕТЫ: сущности
# =============================================================================
class MeetingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None = None
    location: str | None = None
    scheduled_at: datetime
    status: MeetingStatus
    organizer_id: int
    transcript_id: int | None = None
    participants: list[Any] | None = None
    qr_code_token: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TranscriptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    raw_text: str
    summary_text: str | None = None
    summary_json: dict[str, Any] | None = None
    action_items_json: list[Any] | None = None
    minutes_formatted: str | None = None
    processing_status: ProcessingStatus
    audio_mime_type: str | None = None
    updated_at: datetime | None = None


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    assigned_to: int
    assigned_by: int | None = None
    title: str
    description: str | None = None
    deadline: datetime
    status: TaskStatus
    priority: TaskPriority
    completed_at: datetime | None = None
    reminder_sent_at: datetime | None = None


class AttendanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    meeting_id: int
    user_id: int
    timestamp: datetime
    location: str | None = None
    check_in_method: CheckInMethod
    status: AttendanceStatus


# =============================================================================
# ОТВЕТЫ: live-транскрипция / пайплайн
# =============================================================================
class LiveStartResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    meeting_id: int
    transcript_id: int
    status: str = "started"


class InterimSummaryOut(BaseModel):
    keyPoints: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)
    sentiment: str = "neutral"
    insights: str = ""


class ChunkResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    transcribed: str
    summary: InterimSummaryOut | None = None
    accumulated_length: int


class LiveStopResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    meeting_id: int
    transcript_id: int
    final_length: int
    meeting_status: MeetingStatus


class LiveStatusResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    is_active: bool
    transcript_id: int | None = None
    accumulated_length: int = 0
    started_at: datetime | None = None
    last_update: datetime | None = None


class TaskReminderResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    task_id: int
    sent: bool
    provider: str
    reminder_sent_at: datetime | None = None


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    assigned_to: int
    deadline: datetime
    priority: TaskPriority
    status: TaskStatus


class AutoSummaryResponse(BaseModel):
    api_version: str = Field(default=HTTP_API_VERSION)
    meeting_id: int
    summary_generated: bool
    tickets_created: int = 0
    tickets: list[TicketOut] = Field(default_factory=list)
    failed_items: int = 0
    reason: str | None = None
    summary: dict[str, Any] | None = None
