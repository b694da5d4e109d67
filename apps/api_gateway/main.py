"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- HTTP API /v1: встречи, статусы, live-транскрипция, auto-summary, посещаемость, задачи
- WebSocket /v1/ws: подписка на события встречи и приём аудио-чанков

Жизненный цикл:
- startup: логирование, (dev) создание таблиц, контейнер сервисов, sweep статусов
- shutdown: sweep отменяется, live-сессии останавливаются, фоновые задачи дожидаются
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from apps.api_gateway.deps import error_detail, http_status_for
from apps.api_gateway.routers.attendance import router as attendance_router
from apps.api_gateway.routers.live_transcription import router as live_router
from apps.api_gateway.routers.meetings import router as meetings_router
from apps.api_gateway.routers.tasks import router as tasks_router
from apps.api_gateway.ws import ws_router
from meeting_minutes_agent.common.config import get_settings
from meeting_minutes_agent.common.errors import AppError
from meeting_minutes_agent.common.logging import get_project_logger, setup_logging
from meeting_minutes_agent.common.metrics import setup_metrics_endpoint
from meeting_minutes_agent.jobs.status_sweep_job import run_forever
from meeting_minutes_agent.services.container import ServiceContainer, build_container
from meeting_minutes_agent.storage.db import init_db

log = get_project_logger()


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _cors_params() -> tuple[list[str], bool]:
    settings = get_settings()
    allow_origins = _parse_origins(settings.cors_allowed_origins)
    allow_credentials = bool(settings.cors_allow_credentials)

    if _is_prod_env(settings.app_env) and "*" in allow_origins:
        raise RuntimeError("CORS wildcard '*' запрещён в APP_ENV=prod")

    # '*' нельзя использовать вместе с credentials=true
    if "*" in allow_origins:
        allow_credentials = False

    return allow_origins, allow_credentials


@contextlib.asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if getattr(app.state, "services", None) is None:
        if settings.db_auto_create:
            init_db()
            log.info("db_ready")
        app.state.services = build_container(settings=settings)
    services: ServiceContainer = app.state.services

    sweep_task: asyncio.Task | None = None
    if services.settings.status_sweep_enabled:
        sweep_task = asyncio.create_task(
            run_forever(services.status, interval_sec=services.settings.status_sweep_interval_sec)
        )

    log.info("api_gateway_started", extra={"payload": {"sweep": sweep_task is not None}})
    try:
        yield
    finally:
        if sweep_task is not None:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
        await services.shutdown()
        log.info("api_gateway_stopped")


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status_code = http_status_for(exc)
    log.warning(
        "http_app_error",
        extra={
            "payload": {
                "endpoint": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "code": exc.code,
            }
        },
    )
    return JSONResponse(status_code=status_code, content={"detail": error_detail(exc)})


def create_app(services: ServiceContainer | None = None) -> FastAPI:
    app = FastAPI(title="Meeting Minutes Agent", version="0.1.0", lifespan=_lifespan)
    app.state.services = services
    allow_origins, allow_credentials = _cors_params()

    # CORS (настраивается через ENV; в prod wildcard запрещён)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=allow_credentials,
    )

    setup_metrics_endpoint(app)
    app.add_exception_handler(AppError, _app_error_handler)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    app.include_router(meetings_router, prefix="/v1")
    app.include_router(live_router, prefix="/v1")
    app.include_router(attendance_router, prefix="/v1")
    app.include_router(tasks_router, prefix="/v1")
    app.include_router(ws_router, prefix="/v1")

    return app


setup_logging()

app = create_app()
