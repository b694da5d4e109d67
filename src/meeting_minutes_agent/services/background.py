"""
Фоновые fire-and-forget задачи.

Назначение:
- запуск корутин без ожидания вызывающим (flush транскрипта, пайплайн, уведомления)
- у каждой задачи есть канал ошибок: лог + метрика, а не потерянное исключение
- drain() на shutdown дожидается хвоста задач
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from functools import partial
from typing import Any

from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.metrics import record_background_failure

log = get_project_logger()


class BackgroundRunner:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        kind: str,
        meeting_id: int | None = None,
    ) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=f"bg:{kind}")
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_done, kind, meeting_id))
        return task

    def _on_done(self, kind: str, meeting_id: int | None, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        record_background_failure(kind)
        log.error(
            "background_task_failed",
            extra={
                "meeting_id": meeting_id,
                "payload": {"kind": kind, "err": str(exc)[:200]},
            },
            exc_info=exc,
        )

    async def drain(self, timeout: float | None = None) -> None:
        """
        Ждёт завершения всех задач, включая порождённые по ходу ожидания.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                log.warning(
                    "background_drain_timeout",
                    extra={"payload": {"pending": len(self._tasks)}},
                )
                return
            done, _ = await asyncio.wait(list(self._tasks), timeout=remaining)
            self._tasks.difference_update(done)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
