"""EventBus: in-process fan-out of stream events and alert publications.

Publishers never block. Each event is queued as a ``(type, data)`` pair and a
single dispatch task hands it to the type's subscribers followed by wildcard
(``"*"``) subscribers, one event at a time, in publish order.
"""

import asyncio
from collections import Counter
from typing import Any, Awaitable, Callable

from .logging import get_logger

logger = get_logger("utils.event_bus")

Handler = Callable[[str, Any], Awaitable[Any]]
WILDCARD = "*"


class EventBus:
    """Async publish/subscribe bus shared by the stream client and its consumers.

    Event types in use:
        connected, disconnected, console_output, stats, status,
        install_output, daemon_error, active_alerts
    """

    def __init__(self, queue_size: int = 10000, handler_timeout: float = 5.0):
        self._handlers: dict[str, list[Handler]] = {}
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._handler_timeout = handler_timeout
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._published: Counter[str] = Counter()
        self._dropped: Counter[str] = Counter()
        self._dispatched = 0
        self._handler_failures = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``event_type`` (``"*"`` for every type).

        Registering the same handler twice is a no-op. Returns a callable that
        removes the subscription.
        """
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("event_bus_subscribed", event_type=event_type)
        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)
            if not handlers:
                del self._handlers[event_type]

    def clear_subscribers(self) -> None:
        self._handlers.clear()
        logger.info("event_bus_subscribers_cleared")

    def publish(self, event_type: str, data: Any) -> None:
        """Queue an event without waiting. A full queue drops it."""
        try:
            self._queue.put_nowait((event_type, data))
        except asyncio.QueueFull:
            self._dropped[event_type] += 1
            logger.warning("event_bus_queue_full", event_type=event_type)
            return
        self._published[event_type] += 1

    def publish_threadsafe(self, event_type: str, data: Any) -> None:
        """Publish from a thread other than the one running the bus loop."""
        if self._loop is None:
            raise RuntimeError("EventBus is not started")
        self._loop.call_soon_threadsafe(self.publish, event_type, data)

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._dispatch_loop(), name="event-bus")
        logger.info("event_bus_started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info(
            "event_bus_stopped",
            published=sum(self._published.values()),
            dispatched=self._dispatched,
        )

    async def flush(self) -> None:
        """Wait until every queued event has been delivered."""
        if self.running:
            await self._queue.join()

    async def _dispatch_loop(self) -> None:
        while True:
            event_type, data = await self._queue.get()
            try:
                await self._deliver(event_type, data)
                self._dispatched += 1
            finally:
                self._queue.task_done()

    async def _deliver(self, event_type: str, data: Any) -> None:
        targets = list(self._handlers.get(event_type, ()))
        if event_type != WILDCARD:
            targets += self._handlers.get(WILDCARD, ())

        for handler in targets:
            try:
                await asyncio.wait_for(handler(event_type, data), timeout=self._handler_timeout)
            except asyncio.TimeoutError:
                self._handler_failures += 1
                logger.warning("event_bus_handler_timeout", event_type=event_type)
            except Exception as e:
                self._handler_failures += 1
                logger.error("event_bus_handler_error", event_type=event_type, error=str(e))

    def get_stats(self) -> dict:
        return {
            "running": self.running,
            "total_published": sum(self._published.values()),
            "total_dispatched": self._dispatched,
            "total_dropped": sum(self._dropped.values()),
            "handler_failures": self._handler_failures,
            "published_by_type": dict(self._published),
            "queue_size": self._queue.qsize(),
            "subscriber_count": sum(len(h) for h in self._handlers.values()),
            "event_types": [t for t in self._handlers if t != WILDCARD],
        }
