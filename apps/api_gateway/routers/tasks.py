"""
Задачи: создание, список, чтение, обновление, напоминание исполнителю.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from apps.api_gateway.deps import auth_dep, get_services
from meeting_minutes_agent.common.security import AuthContext
from meeting_minutes_agent.contracts.http_api import (
    TaskCreateRequest,
    TaskOut,
    TaskReminderResponse,
    TaskUpdateRequest,
)
from meeting_minutes_agent.domain.enums import TaskStatus
from meeting_minutes_agent.services.container import ServiceContainer

router = APIRouter()


@router.post("/tasks", response_model=TaskOut, status_code=201)
async def create_task(
    req: TaskCreateRequest,
    ctx: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> TaskOut:
    return await services.tasks.create(req, actor_id=ctx.user_id)


@router.get("/tasks", response_model=list[TaskOut])
def list_tasks(
    meeting_id: int | None = Query(default=None),
    assigned_to: int | None = Query(default=None),
    status: TaskStatus | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> list[TaskOut]:
    return services.tasks.list(
        meeting_id=meeting_id, assigned_to=assigned_to, status=status, limit=limit
    )


@router.get("/tasks/{task_id}", response_model=TaskOut)
def get_task(
    task_id: int,
    _: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> TaskOut:
    return services.tasks.get(task_id)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    req: TaskUpdateRequest,
    ctx: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> TaskOut:
    return services.tasks.update(task_id, req, actor_id=ctx.user_id, actor_role=ctx.role)


@router.post("/tasks/{task_id}/reminder", response_model=TaskReminderResponse)
async def send_task_reminder(
    task_id: int,
    ctx: AuthContext = Depends(auth_dep),
    services: ServiceContainer = Depends(get_services),
) -> TaskReminderResponse:
    result = await services.notifications.send_task_reminder(
        task_id, actor_id=ctx.user_id, actor_role=ctx.role
    )
    return TaskReminderResponse(
        task_id=result.task_id,
        sent=result.sent,
        provider=result.provider,
        reminder_sent_at=result.reminder_sent_at,
    )
