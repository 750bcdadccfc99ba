"""In-process event bus.

Table changes are rebroadcast as ``videoUpdate`` / ``contestUpdate`` so that
interested views can re-fetch without holding a reference to the writer.
Delivery is best effort: a failing handler is logged and skipped, and there is
no ordering guarantee between topics.
"""
from __future__ import annotations
import asyncio
import inspect
from contextlib import asynccontextmanager
from datetime import datetime, timezone as dt_tz
from typing import Any, AsyncIterator, Awaitable, Callable, Literal
import structlog

log = structlog.get_logger(__name__)

Topic = Literal["videoUpdate", "contestUpdate", "authState", "notice"]
TOPICS: tuple[str, ...] = ("videoUpdate", "contestUpdate", "authState", "notice")

Handler = Callable[[dict], Awaitable[None] | None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {t: [] for t in TOPICS}

    def subscribe(self, topic: Topic, handler: Handler) -> Callable[[], None]:
        if topic not in self._handlers:
            raise ValueError(f"Unknown topic: {topic}")
        self._handlers[topic].append(handler)

        def unsubscribe() -> None:
            try:
                self._handlers[topic].remove(handler)
            except ValueError:
                pass
        return unsubscribe

    def subscriber_count(self, topic: Topic) -> int:
        return len(self._handlers.get(topic, []))

    async def publish(self, topic: Topic, payload: dict[str, Any] | None = None) -> int:
        event = {"topic": topic, "at": datetime.now(dt_tz.utc).isoformat(), "detail": payload or {}}
        delivered = 0
        for handler in list(self._handlers.get(topic, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                log.exception("event.handler_failed", topic=topic)
        return delivered

    @asynccontextmanager
    async def stream(self, *topics: Topic, maxsize: int = 100) -> AsyncIterator[asyncio.Queue]:
        """Subscribe a queue to ``topics`` for the lifetime of the context."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

        def _put(event: dict) -> None:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                log.warning("event.queue_full", topic=event.get("topic"))

        unsubs = [self.subscribe(t, _put) for t in (topics or TOPICS)]
        try:
            yield queue
        finally:
            for u in unsubs:
                u()


async def notify(bus: EventBus, message: str, *, level: str = "info", user_id: str | None = None, **extra: Any) -> None:
    """Publish a user-facing notice (the API's equivalent of a toast)."""
    payload = {"level": level, "message": message, **extra}
    if user_id:
        payload["user_id"] = user_id
    log.info("notice", level=level, notice=message, user_id=user_id)
    await bus.publish("notice", payload)


bus = EventBus()

def get_event_bus() -> EventBus:
    return bus
