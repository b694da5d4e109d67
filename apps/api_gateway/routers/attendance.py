"""
Посещаемость: check-in текущего пользователя и список отметок встречи.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from apps.api_gateway.deps import auth_dep, get_services
from meeting_minutes_agent.common.security import AuthContext
from meeting_minutes_agent.contracts.http_api import AttendanceCheckInRequest, AttendanceOut
from meeting_minutes_agent.services.container import ServiceContainer

router = APIRouter()


@router.post("/meetings/{meeting_id}/attendance", response_model=AttendanceOut, status_code=201)
async def check_in(
    meeting_id: int,
    req: AttendanceCheckInRequest,
    ctx: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> AttendanceOut:
    return await services.attendance.check_in(meeting_id, user_id=ctx.user_id, req=req)


@router.get("/meetings/{meeting_id}/attendance", response_model=list[AttendanceOut])
def list_attendance(
    meeting_id: int,
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> list[AttendanceOut]:
    return services.attendance.list(meeting_id)
