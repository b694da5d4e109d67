"""
Realtime broadcast: события встречи -> все подписчики этой встречи.

Бэкенды:
- memory: ограниченные asyncio-очереди в процессе gateway
- redis: pub/sub канал ws:meeting:<id> (мост между процессами)

Гарантии:
- событие доходит до текущих подписчиков встречи и только до них
- переполненная очередь подписчика -> событие для него отбрасывается (лог)
- порядок публикаций одного вызывающего сохраняется для каждого подписчика
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Callable

import redis

from meeting_minutes_agent.common.config import Settings, get_settings
from meeting_minutes_agent.common.logging import get_project_logger
from meeting_minutes_agent.common.time import utc_ms
from meeting_minutes_agent.contracts.ws_events import envelope

log = get_project_logger()


def channel_for(meeting_id: int) -> str:
    return f"ws:meeting:{meeting_id}"


# =============================================================================
# SUBSCRIPTION
# =============================================================================
class Subscription:
    """
    Подписка одного соединения на одну встречу.
    """

    def __init__(
        self,
        meeting_id: int,
        *,
        queue_size: int,
        on_close: Callable[[Subscription], None],
    ) -> None:
        self.meeting_id = meeting_id
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=max(1, queue_size))
        self._on_close = on_close
        self.closed = False
        self.dropped = 0

    def offer(self, event: dict) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning(
                "broadcast_event_dropped",
                extra={
                    "meeting_id": self.meeting_id,
                    "payload": {"event_type": event.get("event_type"), "dropped": self.dropped},
                },
            )
            return False
        return True

    async def get(self) -> dict:
        return await self._queue.get()

    def get_nowait(self) -> dict | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._on_close(self)


# =============================================================================
# BROADCASTER
# =============================================================================
class Broadcaster(ABC):
    def __init__(self, *, queue_size: int = 256, clock_ms: Callable[[], int] = utc_ms) -> None:
        self.queue_size = queue_size
        self._clock_ms = clock_ms
        self._subs: dict[int, set[Subscription]] = {}

    def build_event(self, meeting_id: int, event_type: str, payload: dict) -> dict:
        return envelope(event_type, meeting_id, payload, self._clock_ms())

    def subscriber_count(self, meeting_id: int) -> int:
        return len(self._subs.get(meeting_id, ()))

    def _deliver_local(self, meeting_id: int, event: dict) -> int:
        delivered = 0
        for sub in list(self._subs.get(meeting_id, ())):
            if sub.offer(event):
                delivered += 1
        return delivered

    def _register(self, sub: Subscription) -> None:
        self._subs.setdefault(sub.meeting_id, set()).add(sub)

    def _unregister(self, sub: Subscription) -> None:
        subs = self._subs.get(sub.meeting_id)
        if subs is None:
            return
        subs.discard(sub)
        if not subs:
            self._subs.pop(sub.meeting_id, None)

    @abstractmethod
    async def publish(self, meeting_id: int, event_type: str, payload: dict) -> None: ...

    @abstractmethod
    async def subscribe(self, meeting_id: int) -> Subscription: ...

    async def close(self) -> None:
        for subs in list(self._subs.values()):
            for sub in list(subs):
                sub.close()


class InMemoryBroadcaster(Broadcaster):
    async def publish(self, meeting_id: int, event_type: str, payload: dict) -> None:
        event = self.build_event(meeting_id, event_type, payload)
        delivered = self._deliver_local(meeting_id, event)
        log.debug(
            "broadcast_published",
            extra={
                "meeting_id": meeting_id,
                "payload": {"event_type": event_type, "delivered": delivered},
            },
        )

    async def subscribe(self, meeting_id: int) -> Subscription:
        sub = Subscription(meeting_id, queue_size=self.queue_size, on_close=self._unregister)
        self._register(sub)
        return sub


class RedisBroadcaster(Broadcaster):
    """
    Публикация в Redis pub/sub; на каждую встречу с локальными подписчиками
    один читатель канала, который раздаёт события по локальным очередям.
    Клиент redis синхронный, поэтому вызовы идут через asyncio.to_thread.
    """

    def __init__(self, client: redis.Redis, **kwargs) -> None:
        super().__init__(**kwargs)
        self.client = client
        self._readers: dict[int, asyncio.Task] = {}

    async def publish(self, meeting_id: int, event_type: str, payload: dict) -> None:
        event = self.build_event(meeting_id, event_type, payload)
        data = json.dumps(event, ensure_ascii=False, default=str)
        await asyncio.to_thread(self.client.publish, channel_for(meeting_id), data)

    async def subscribe(self, meeting_id: int) -> Subscription:
        sub = Subscription(meeting_id, queue_size=self.queue_size, on_close=self._unregister)
        self._register(sub)
        if meeting_id not in self._readers:
            pubsub = self.client.pubsub(ignore_subscribe_messages=True)
            await asyncio.to_thread(pubsub.subscribe, channel_for(meeting_id))
            self._readers[meeting_id] = asyncio.get_running_loop().create_task(
                self._read_channel(meeting_id, pubsub), name=f"broadcast:{meeting_id}"
            )
        return sub

    def _unregister(self, sub: Subscription) -> None:
        super()._unregister(sub)
        if self.subscriber_count(sub.meeting_id) == 0:
            reader = self._readers.pop(sub.meeting_id, None)
            if reader is not None:
                reader.cancel()

    async def _read_channel(self, meeting_id: int, pubsub) -> None:
        try:
            while True:
                msg = await asyncio.to_thread(pubsub.get_message, True, 1.0)
                if not msg or msg.get("type") != "message":
                    continue
                try:
                    event = json.loads(msg.get("data") or "")
                except ValueError:
                    log.warning("broadcast_bad_message", extra={"meeting_id": meeting_id})
                    continue
                self._deliver_local(meeting_id, event)
        finally:
            await asyncio.to_thread(pubsub.close)

    async def close(self) -> None:
        await super().close()
        for reader in list(self._readers.values()):
            reader.cancel()
        self._readers.clear()


def build_broadcaster(settings: Settings | None = None) -> Broadcaster:
    s = settings or get_settings()
    backend = (s.broadcast_backend or "memory").strip().lower()
    if backend == "redis":
        client = redis.Redis.from_url(s.redis_url, decode_responses=True)
        return RedisBroadcaster(client, queue_size=s.broadcast_queue_size)
    return InMemoryBroadcaster(queue_size=s.broadcast_queue_size)
