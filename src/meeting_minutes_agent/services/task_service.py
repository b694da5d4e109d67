"""
Задачи: создание, чтение и обновление.

Создание вручную (не из action items) уведомляет исполнителя так же,
как auto-summary: письмо уходит в фоне, сбой доставки только логируется.

Просрочка (pending + дедлайн прошёл -> overdue) применяется ORM-хуками
при загрузке/записи строки, отдельного джоба нет.
"""

from __future__ import annotations

import asyncio

from meeting_minutes_agent.common.errors import ForbiddenError, NotFoundError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import Clock, to_naive_utc, utc_now
from meeting_minutes_agent.contracts.http_api import TaskCreateRequest, TaskOut, TaskUpdateRequest
from meeting_minutes_agent.delivery.base import TaskAssignment
from meeting_minutes_agent.domain.enums import TaskStatus, UserRole
from meeting_minutes_agent.storage.db import SessionScope
from meeting_minutes_agent.storage.models import Task
from meeting_minutes_agent.storage.repositories import (
    MeetingRepository,
    TaskRepository,
    UserRepository,
)

from .notification_service import NotificationService, assignment_for

log = get_project_logger()


class TaskService:
    def __init__(
        self,
        *,
        session_scope: SessionScope,
        notifications: NotificationService | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.session_scope = session_scope
        self.notifications = notifications
        self.clock = clock

    async def create(self, req: TaskCreateRequest, *, actor_id: int) -> TaskOut:
        out, assignment = await asyncio.to_thread(self._create, req, actor_id)
        if assignment is not None and self.notifications is not None:
            self.notifications.schedule_task_assigned(assignment)
        return out

    def _create(
        self, req: TaskCreateRequest, actor_id: int
    ) -> tuple[TaskOut, TaskAssignment | None]:
        with self.session_scope() as s:
            if MeetingRepository(s).get(req.meeting_id) is None:
                raise NotFoundError("Встреча не найдена", {"meeting_id": req.meeting_id})
            if UserRepository(s).get(req.assigned_to) is None:
                raise NotFoundError("Исполнитель не найден", {"user_id": req.assigned_to})

            task = Task(
                meeting_id=req.meeting_id,
                assigned_to=req.assigned_to,
                assigned_by=actor_id,
                title=req.title.strip(),
                description=req.description,
                deadline=to_naive_utc(req.deadline),
                status=TaskStatus.pending,
                priority=req.priority,
            )
            TaskRepository(s).add(task)
            out = TaskOut.model_validate(task)
            assignment = assignment_for(s, task)

        log.info(
            "task_created",
            extra={
                "meeting_id": out.meeting_id,
                "payload": {"task_id": out.id, "assigned_to": out.assigned_to, "actor_id": actor_id},
            },
        )
        return out, assignment

    def list(
        self,
        *,
        meeting_id: int | None = None,
        assigned_to: int | None = None,
        status: TaskStatus | None = None,
        limit: int = 100,
    ) -> list[TaskOut]:
        with self.session_scope() as s:
            rows = TaskRepository(s).list_filtered(
                meeting_id=meeting_id, assigned_to=assigned_to, status=status, limit=limit
            )
            return [TaskOut.model_validate(t) for t in rows]

    def get(self, task_id: int) -> TaskOut:
        with self.session_scope() as s:
            task = TaskRepository(s).get(task_id)
            if task is None:
                raise NotFoundError("Задача не найдена", {"task_id": task_id})
            return TaskOut.model_validate(task)

    def update(
        self, task_id: int, req: TaskUpdateRequest, *, actor_id: int, actor_role: str
    ) -> TaskOut:
        with self.session_scope() as s:
            task = TaskRepository(s).get(task_id)
            if task is None:
                raise NotFoundError("Задача не найдена", {"task_id": task_id})
            if actor_role != UserRole.admin.value and task.assigned_to != actor_id:
                raise ForbiddenError("Недостаточно прав", {"task_id": task_id})

            if req.title:
                task.title = req.title
            if req.description is not None:
                task.description = req.description
            if req.deadline is not None:
                task.deadline = to_naive_utc(req.deadline)
            if req.priority is not None:
                task.priority = req.priority
            if req.status is not None:
                task.status = req.status
                if req.status == TaskStatus.completed and task.completed_at is None:
                    task.completed_at = to_naive_utc(self.clock())
            s.flush()
            out = TaskOut.model_validate(task)

        log.info(
            "task_updated",
            extra={
                "meeting_id": out.meeting_id,
                "payload": {"task_id": task_id, "status": out.status.value, "actor_id": actor_id},
            },
        )
        return out
