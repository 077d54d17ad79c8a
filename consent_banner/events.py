"""Event bus — how consent changes are announced on the page.

Other code (analytics loaders, embeds, the host's audit trail) subscribes
here instead of polling the storage backends. Emitting never blocks the
banner: events go onto a queue drained by a background task, and a failing
subscriber is logged without affecting the others.

Usage:
    from consent_banner.events import emit, subscribe

    async def on_accept(event: SystemEvent) -> None:
        load_embeds(event.data["version"])

    subscribe(on_accept, event_types=[EventType.CONSENT_ACCEPTED])

    await emit(SystemEvent(event_type=EventType.CONSENT_ACCEPTED, data=record.model_dump()))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from consent_banner.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


class EventBus:
    """Queue-backed pub/sub for SystemEvents within one event loop."""

    def __init__(self) -> None:
        self._global: list[EventHandler] = []
        self._by_type: dict[EventType, list[EventHandler]] = {}
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler, event_types: list[EventType] | None = None) -> None:
        """Register an async handler for all events, or only the given types."""
        if event_types is None:
            self._global.append(handler)
            logger.info("Registered global event subscriber: %s", handler.__name__)
            return
        for event_type in event_types:
            self._by_type.setdefault(event_type, []).append(handler)
        logger.info(
            "Registered event subscriber %s for types: %s",
            handler.__name__,
            [t.value for t in event_types],
        )

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._global:
            self._global.remove(handler)
        for handlers in self._by_type.values():
            if handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [*self._global, *self._by_type.get(event_type, [])]

    # ── Publishing ───────────────────────────────────────────────────

    async def emit(self, event: SystemEvent) -> None:
        """Queue an event for background dispatch."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._ensure_worker()
        await self._queue.put(event)
        logger.debug("Event emitted: %s", event.event_type.value)

    async def emit_nowait(self, event: SystemEvent) -> None:
        """Dispatch immediately, bypassing the queue."""
        await self._dispatch(event)

    async def flush(self) -> None:
        """Wait until every queued event has been dispatched."""
        if self._queue is not None:
            await self._queue.join()

    async def _dispatch(self, event: SystemEvent) -> None:
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            return
        results = await asyncio.gather(
            *(self._call(handler, event) for handler in handlers),
            return_exceptions=True,
        )
        failures = sum(1 for r in results if isinstance(r, Exception))
        if failures:
            logger.error("%d handler(s) failed for %s", failures, event.event_type.value)

    @staticmethod
    async def _call(handler: EventHandler, event: SystemEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Handler %s failed for event %s", handler.__name__, event.event_type.value)
            raise

    # ── Worker ───────────────────────────────────────────────────────

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain_forever())
            logger.info("Event worker started")

    async def _drain_forever(self) -> None:
        queue = self._queue
        if queue is None:
            return
        while True:
            try:
                event = await queue.get()
            except asyncio.CancelledError:
                logger.info("Event worker shutting down")
                break
            try:
                await self._dispatch(event)
            except Exception:
                logger.exception("Error in event worker")
            finally:
                queue.task_done()

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Create a fresh queue and worker. Call during FastAPI lifespan startup."""
        self._queue = asyncio.Queue()
        self._worker = None
        self._ensure_worker()
        logger.info(
            "Event system started with %d global + %d typed subscribers",
            len(self._global),
            sum(len(v) for v in self._by_type.values()),
        )

    async def stop(self) -> None:
        """Dispatch what is queued, then stop the worker."""
        worker = self._worker
        if worker is not None and not worker.done():
            await self.flush()
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        self._queue = None
        logger.info("Event system stopped")

    def reset(self) -> None:
        """Forget subscribers and loop-bound state. Intended for tests."""
        self._global.clear()
        self._by_type.clear()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
        self._worker = None
        self._queue = None


# Module-level singleton and function-style API
event_bus = EventBus()

subscribe = event_bus.subscribe
unsubscribe = event_bus.unsubscribe
emit = event_bus.emit
emit_nowait = event_bus.emit_nowait
flush = event_bus.flush
start_event_system = event_bus.start
stop_event_system = event_bus.stop
reset = event_bus.reset
