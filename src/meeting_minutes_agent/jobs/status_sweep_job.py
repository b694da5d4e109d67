"""
Фоновая job: периодический sweep статусов встреч.

Назначение:
- первый проход сразу при старте, затем каждые STATUS_SWEEP_INTERVAL_SEC
- ошибка тика логируется, цикл продолжается
"""

from __future__ import annotations

import asyncio

from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.services.meeting_status_service import MeetingStatusService

log = get_project_logger()


async def run_forever(service: MeetingStatusService, *, interval_sec: float) -> None:
    log.info("status_sweep_job_started", extra={"payload": {"interval_sec": interval_sec}})
    try:
        while True:
            try:
                await service.sweep()
            except Exception as e:
                log.error("status_sweep_tick_failed", extra={"payload": {"err": str(e)[:200]}})
            await asyncio.sleep(interval_sec)
    finally:
        log.info("status_sweep_job_stopped")
