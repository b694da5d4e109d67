"""
HTTP роуты для встреч.

- POST  /v1/meetings                              создать (admin, secretary)
- GET   /v1/meetings                              список (фильтр по статусу)
- GET   /v1/meetings/{id}
- PUT   /v1/meetings/{id}                         правка полей (admin, secretary, организатор)
- POST  /v1/meetings/{id}/start | /stop           ручные переходы статуса
- PATCH /v1/meetings/{id}/status                  cancelled | rescheduled
- POST  /v1/meetings/{id}/auto-summary            резюме + задачи
- POST  /v1/meetings/{id}/transcription/upload    разовая транскрипция файла
- GET   /v1/meetings/{id}/transcript              транскрипт и резюме
- GET   /v1/meetings/{id}/report                  PDF-отчёт
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile

from apps.api_gateway.deps import auth_dep, get_services, manage_dep
from meeting_minutes_agent.common.security import AuthContext
from meeting_minutes_agent.contracts.http_api import (
    AutoSummaryResponse,
    MeetingCreateRequest,
    MeetingOut,
    MeetingStatusUpdateRequest,
    MeetingUpdateRequest,
    TicketOut,
    TranscriptOut,
)
from meeting_minutes_agent.domain.enums import MeetingStatus
from meeting_minutes_agent.services.container import ServiceContainer

router = APIRouter()


@router.post("/meetings", response_model=MeetingOut, status_code=201)
def create_meeting(
    req: MeetingCreateRequest,
    ctx: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> MeetingOut:
    return services.meetings.create(req, organizer_id=ctx.user_id)


@router.get("/meetings", response_model=list[MeetingOut])
def list_meetings(
    status: MeetingStatus | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> list[MeetingOut]:
    return services.meetings.list(status=status, limit=limit)


@router.get("/meetings/{meeting_id}", response_model=MeetingOut)
def get_meeting(
    meeting_id: int,
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> MeetingOut:
    return services.meetings.get(meeting_id)


@router.put("/meetings/{meeting_id}", response_model=MeetingOut)
def update_meeting(
    meeting_id: int,
    req: MeetingUpdateRequest,
    ctx: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> MeetingOut:
    return services.meetings.update(meeting_id, req, actor_id=ctx.user_id, actor_role=ctx.role)


@router.post("/meetings/{meeting_id}/start", response_model=MeetingOut)
async def start_meeting(
    meeting_id: int,
    ctx: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> MeetingOut:
    await services.status.start(meeting_id, actor_id=ctx.user_id)
    return await asyncio.to_thread(services.meetings.get, meeting_id)


@router.post("/meetings/{meeting_id}/stop", response_model=MeetingOut)
async def stop_meeting(
    meeting_id: int,
    ctx: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> MeetingOut:
    await services.status.stop(meeting_id, actor_id=ctx.user_id)
    return await asyncio.to_thread(services.meetings.get, meeting_id)


@router.patch("/meetings/{meeting_id}/status", response_model=MeetingOut)
async def update_meeting_status(
    meeting_id: int,
    req: MeetingStatusUpdateRequest,
    ctx: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> MeetingOut:
    if req.status == MeetingStatus.cancelled.value:
        await services.status.cancel(meeting_id, actor_id=ctx.user_id)
    else:
        await services.status.reschedule(meeting_id, actor_id=ctx.user_id)
    return await asyncio.to_thread(services.meetings.get, meeting_id)


@router.post("/meetings/{meeting_id}/auto-summary", response_model=AutoSummaryResponse)
async def generate_auto_summary(
    meeting_id: int,
    _: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> AutoSummaryResponse:
    result = await services.pipeline.run(meeting_id)
    return AutoSummaryResponse(
        meeting_id=result.meeting_id,
        summary_generated=result.summary_generated,
        tickets_created=result.tickets_created,
        tickets=[TicketOut.model_validate(t) for t in result.tickets],
        failed_items=result.failed_items,
        reason=result.reason,
        summary=result.summary.to_document() if result.summary else None,
    )


@router.post("/meetings/{meeting_id}/transcription/upload", response_model=TranscriptOut)
async def upload_transcription(
    meeting_id: int,
    file: UploadFile = File(...),
    _: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> TranscriptOut:
    audio = await file.read()
    return await services.transcription.transcribe_upload(
        meeting_id, audio, mime_type=file.content_type
    )


@router.get("/meetings/{meeting_id}/transcript", response_model=TranscriptOut)
def get_transcript(
    meeting_id: int,
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> TranscriptOut:
    return services.meetings.get_transcript(meeting_id)


@router.get("/meetings/{meeting_id}/report")
def get_meeting_report(
    meeting_id: int,
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> Response:
    report = services.reports.meeting_report(meeting_id)
    return Response(
        content=report.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{report.filename}"'},
    )
