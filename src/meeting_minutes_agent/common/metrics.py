"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Счётчики жизненного цикла встреч, live-транскрипции и пайплайна тикетов
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

# Общее количество HTTP-запросов
REQUESTS_TOTAL = Counter(
    "meetings_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "meetings_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

MEETING_STATUS_TRANSITIONS_TOTAL = Counter(
    "meetings_status_transitions_total",
    "Переходы статусов встреч",
    ["source", "to_status", "result"],  # source=manual|sweep|admin, result=ok|rejected
)

LIVE_SESSIONS_ACTIVE = Gauge(
    "meetings_live_sessions_active",
    "Количество активных live-сессий транскрипции",
)

LIVE_CHUNKS_TOTAL = Counter(
    "meetings_live_chunks_total",
    "Обработанные аудио-чанки live-транскрипции",
    ["result"],  # text|empty|stt_failed
)

CAPABILITY_LATENCY_MS = Histogram(
    "meetings_capability_latency_ms",
    "Задержка вызовов STT/LLM (мс)",
    ["capability"],
    buckets=(50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000),
)

CAPABILITY_FAILURES_TOTAL = Counter(
    "meetings_capability_failures_total",
    "Ошибки вызовов STT/LLM",
    ["capability", "path"],
)

BACKGROUND_TASK_FAILURES_TOTAL = Counter(
    "meetings_background_task_failures_total",
    "Ошибки фоновых fire-and-forget задач",
    ["kind"],
)

TICKETS_CREATED_TOTAL = Counter(
    "meetings_tickets_created_total",
    "Тикеты, созданные из action items",
    ["result"],  # created|failed
)


@contextmanager
def track_capability_latency(capability: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        CAPABILITY_LATENCY_MS.labels(capability=capability).observe(elapsed_ms)


def record_transition(*, source: str, to_status: str, ok: bool) -> None:
    MEETING_STATUS_TRANSITIONS_TOTAL.labels(
        source=source, to_status=to_status, result="ok" if ok else "rejected"
    ).inc()


def record_capability_failure(*, capability: str, path: str) -> None:
    CAPABILITY_FAILURES_TOTAL.labels(capability=capability, path=path).inc()


def record_background_failure(kind: str) -> None:
    BACKGROUND_TASK_FAILURES_TOTAL.labels(kind=kind).inc()


# =============================================================================
# HTTP
# =============================================================================
def setup_metrics_endpoint(app: FastAPI) -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service="api-gateway",
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service="api-gateway",
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
