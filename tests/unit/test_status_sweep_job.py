from __future__ import annotations

import asyncio

from meeting_minutes_agent.jobs.status_sweep_job import run_forever
from meeting_minutes_agent.services.meeting_status_service import SweepResult


class _FlakyStatusService:
    def __init__(self) -> None:
        self.calls = 0

    async def sweep(self) -> SweepResult:
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("db down")
        return SweepResult()


def test_sweep_loop_survives_failed_tick_and_stops_on_cancel():
    service = _FlakyStatusService()

    async def scenario():
        task = asyncio.create_task(run_forever(service, interval_sec=0.01))
        while service.calls < 3:
            await asyncio.sleep(0.01)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            return True
        return False

    assert asyncio.run(scenario()) is True
    assert service.calls >= 3
