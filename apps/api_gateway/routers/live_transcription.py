"""
HTTP роуты live-транскрипции.

- POST /v1/meetings/{id}/live-transcription/start
- POST /v1/meetings/{id}/live-transcription/chunk   {audio_data: base64, mime_type}
- POST /v1/meetings/{id}/live-transcription/stop
- GET  /v1/meetings/{id}/live-transcription/status
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import auth_dep, get_services, manage_dep
from meeting_minutes_agent.common.errors import BadInputError
from meeting_minutes_agent.common.security import AuthContext
from meeting_minutes_agent.common.utils import b64_decode
from meeting_minutes_agent.contracts.http_api import (
    AudioChunkRequest,
    ChunkResponse,
    InterimSummaryOut,
    LiveStartResponse,
    LiveStatusResponse,
    LiveStopResponse,
)
from meeting_minutes_agent.services.container import ServiceContainer

router = APIRouter(prefix="/meetings/{meeting_id}/live-transcription")


@router.post("/start", response_model=LiveStartResponse)
async def start_live_transcription(
    meeting_id: int,
    ctx: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> LiveStartResponse:
    result = await services.live.start(meeting_id, actor_id=ctx.user_id)
    return LiveStartResponse(
        meeting_id=result.meeting_id, transcript_id=result.transcript_id, status=result.status
    )


@router.post("/chunk", response_model=ChunkResponse)
async def ingest_audio_chunk(
    meeting_id: int,
    req: AudioChunkRequest,
    _: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> ChunkResponse:
    try:
        audio = b64_decode(req.audio_data)
    except ValueError as e:
        raise BadInputError("audio_data не декодируется", {"meeting_id": meeting_id}) from e

    result = await services.live.ingest_chunk(meeting_id, audio, req.mime_type)
    summary = (
        InterimSummaryOut(**result.summary.model_dump(by_alias=True)) if result.summary else None
    )
    return ChunkResponse(
        transcribed=result.transcribed,
        summary=summary,
        accumulated_length=result.accumulated_length,
    )


@router.post("/stop", response_model=LiveStopResponse)
async def stop_live_transcription(
    meeting_id: int,
    ctx: AuthContext = Depends(manage_dep),
    services: ServiceContainer = Depends(get_services),
) -> LiveStopResponse:
    result = await services.live.stop(meeting_id, actor_id=ctx.user_id)
    return LiveStopResponse(
        meeting_id=result.meeting_id,
        transcript_id=result.transcript_id,
        final_length=result.final_length,
        meeting_status=result.meeting_status,
    )


@router.get("/status", response_model=LiveStatusResponse)
async def get_transcription_status(
    meeting_id: int,
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> LiveStatusResponse:
    st = await services.live.status(meeting_id)
    return LiveStatusResponse(
        is_active=st.is_active,
        transcript_id=st.transcript_id,
        accumulated_length=st.accumulated_length,
        started_at=st.started_at,
        last_update=st.last_update,
    )
