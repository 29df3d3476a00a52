"""
In-process domain events.

Business logic publishes events onto a queue and returns immediately. A
background consumer, started with the application, hands each event to the
subscribed handlers. Delivery is fire-and-forget: handler failures are
logged and never reach the publisher.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class DomainEvent:
    user_id: UUID
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class RecommendationImplemented(DomainEvent):
    pass


@dataclass(frozen=True)
class AccountConnected(DomainEvent):
    pass


EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[DomainEvent] = asyncio.Queue(maxsize=maxsize)
        self._handlers: List[EventHandler] = []
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, handler: EventHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def publish(self, event: DomainEvent) -> bool:
        """Enqueue without waiting. A full queue drops the event with a warning."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("domain_event_dropped", event_name=event.name, user_id=str(event.user_id))
            return False
        logger.info("domain_event_published", event_name=event.name, user_id=str(event.user_id))
        return True

    def pending(self) -> int:
        return self._queue.qsize()

    async def dispatch(self, event: DomainEvent) -> None:
        for handler in self._handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "domain_event_handler_failed",
                    event_name=event.name,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )

    async def run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="domain-event-consumer")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


event_bus = EventBus()


def get_event_bus() -> EventBus:
    return event_bus
