"""
WebSocket обработчик.

Протокол:
- клиент шлёт JSON {"event_type": "meeting.join", "meeting_id": N} -> подписка на события встречи
- {"event_type": "meeting.leave", "meeting_id": N} -> отписка
- {"event_type": "audio.chunk", "meeting_id": N, "content_b64": "...", "mime_type": "..."}
  -> чанк идёт в live-реестр, ответ audio.ack
- ошибки -> {"event_type": "error", "code": ..., "message": ...}

Одно соединение может быть подписано на несколько встреч.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from apps.api_gateway.deps import MANAGE_ROLES
from meeting_minutes_agent.common.errors import AppError, ErrCode, UnauthorizedError
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.security import AuthContext, require_auth
from meeting_minutes_agent.common.utils import b64_decode, safe_dict
from meeting_minutes_agent.contracts.versions import WS_SCHEMA_VERSION
from meeting_minutes_agent.contracts.ws_events import (
    AUDIO_ACK,
    AUDIO_CHUNK,
    MEETING_JOIN,
    MEETING_LEAVE,
    AudioChunkEvent,
    ErrorEvent,
)
from meeting_minutes_agent.services.broadcast import Subscription
from meeting_minutes_agent.services.container import ServiceContainer

log = get_project_logger()

ws_router = APIRouter()


def _ws_client_ip(ws: WebSocket) -> str | None:
    return ws.client.host if ws.client else None


async def _send_error(ws: WebSocket, code: str, message: str) -> None:
    await ws.send_text(json.dumps(asdict(ErrorEvent(code=code, message=message)), ensure_ascii=False))


async def _authorize_ws(ws: WebSocket) -> AuthContext | None:
    try:
        ctx = require_auth(
            authorization=ws.headers.get("authorization"),
            x_api_key=ws.headers.get("x-api-key"),
        )
    except UnauthorizedError as e:
        log.warning(
            "security_audit_deny",
            extra={
                "payload": {
                    "endpoint": ws.url.path,
                    "method": "WS",
                    "status_code": status.WS_1008_POLICY_VIOLATION,
                    "reason": e.message,
                    "error_code": e.code,
                    "client_ip": _ws_client_ip(ws),
                }
            },
        )
        await ws.close(code=status.WS_1008_POLICY_VIOLATION, reason=f"{e.code}: {e.message}")
        return None
    return ctx


async def _forward(ws: WebSocket, sub: Subscription) -> None:
    """
    Фоновая задача: события подписки -> клиенту.
    """
    while not sub.closed:
        event = await sub.get()
        await ws.send_text(json.dumps(event, ensure_ascii=False))


def _parse_meeting_id(event: dict) -> int | None:
    raw = event.get("meeting_id")
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


class _Connection:
    def __init__(self, ws: WebSocket, ctx: AuthContext, services: ServiceContainer) -> None:
        self.ws = ws
        self.ctx = ctx
        self.services = services
        self.subs: dict[int, tuple[Subscription, asyncio.Task]] = {}

    async def join(self, meeting_id: int) -> None:
        if meeting_id in self.subs:
            return
        sub = await self.services.broadcaster.subscribe(meeting_id)
        task = asyncio.create_task(self._forward_safe(sub))
        self.subs[meeting_id] = (sub, task)
        log.info(
            "ws_meeting_joined",
            extra={"meeting_id": meeting_id, "payload": {"subject": self.ctx.subject}},
        )

    async def leave(self, meeting_id: int) -> None:
        entry = self.subs.pop(meeting_id, None)
        if entry is None:
            return
        sub, task = entry
        sub.close()
        task.cancel()
        log.info(
            "ws_meeting_left",
            extra={"meeting_id": meeting_id, "payload": {"subject": self.ctx.subject}},
        )

    async def close(self) -> None:
        for meeting_id in list(self.subs):
            await self.leave(meeting_id)

    async def _forward_safe(self, sub: Subscription) -> None:
        try:
            await _forward(self.ws, sub)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(
                "ws_forward_failed",
                extra={"meeting_id": sub.meeting_id, "payload": {"err": str(e)[:200]}},
            )

    async def audio_chunk(self, chunk: AudioChunkEvent) -> None:
        if self.ctx.role not in MANAGE_ROLES:
            await _send_error(self.ws, ErrCode.FORBIDDEN, "Недостаточно прав")
            return
        try:
            audio = b64_decode(chunk.content_b64)
        except ValueError:
            await _send_error(self.ws, ErrCode.BAD_INPUT, "content_b64 не декодируется")
            return
        try:
            result = await self.services.live.ingest_chunk(
                chunk.meeting_id, audio, chunk.mime_type
            )
        except AppError as e:
            await _send_error(self.ws, e.code, e.message)
            return
        await self.ws.send_text(
            json.dumps(
                {
                    "schema_version": WS_SCHEMA_VERSION,
                    "event_type": AUDIO_ACK,
                    "meeting_id": chunk.meeting_id,
                    "transcribed": result.transcribed,
                    "accumulated_length": result.accumulated_length,
                },
                ensure_ascii=False,
            )
        )


@ws_router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket) -> None:
    ctx = await _authorize_ws(ws)
    if ctx is None:
        return

    await ws.accept()
    conn = _Connection(ws, ctx, ws.app.state.services)
    event: dict | None = None

    try:
        while True:
            raw = await ws.receive_text()
            try:
                event = json.loads(raw)
            except json.JSONDecodeError:
                await _send_error(ws, "bad_json", "Невалидный JSON")
                continue
            if not isinstance(event, dict):
                await _send_error(ws, "bad_json", "Ожидается JSON-объект")
                continue

            et = event.get("event_type")
            meeting_id = _parse_meeting_id(event)
            if et not in {MEETING_JOIN, MEETING_LEAVE, AUDIO_CHUNK}:
                await _send_error(ws, "bad_event", "Неизвестный event_type")
                continue
            if meeting_id is None:
                await _send_error(ws, "no_meeting_id", "meeting_id обязателен")
                continue

            if et == MEETING_JOIN:
                await conn.join(meeting_id)
            elif et == MEETING_LEAVE:
                await conn.leave(meeting_id)
            else:
                await conn.audio_chunk(
                    AudioChunkEvent(
                        meeting_id=meeting_id,
                        content_b64=str(event.get("content_b64") or ""),
                        mime_type=str(event.get("mime_type") or "audio/webm"),
                    )
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.error(
            "ws_fatal",
            extra={
                "payload": {
                    "err": str(e)[:200],
                    "event": safe_dict(event) if event else None,
                }
            },
        )
    finally:
        await conn.close()
