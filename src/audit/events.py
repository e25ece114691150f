"""Audit event bus — async pub/sub for SystemEvents.

Every quote and discount transition is published here once it has been
saved; the audit subscriber turns each event into an audit_log row.

Usage:
    from src.audit.events import emit, event_from_audit, subscribe

    subscribe(audit_on_event)                               # all events
    subscribe(notify_sales, [EventType.DISCOUNT_APPROVED])  # typed

    await emit(event_from_audit(transition.audit, quote.id))
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import defaultdict
from collections.abc import Callable, Coroutine
from typing import Any

from src.schemas.approvals import AuditEntry
from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]


def event_from_audit(entry: AuditEntry, quote_id: str | None, source_module: str | None = None) -> SystemEvent:
    """Wrap a transition's AuditEntry into the event the audit log stores."""
    return SystemEvent(
        event_type=entry.event_type,
        quote_id=quote_id,
        actor_id=entry.actor_id,
        data=entry.model_dump(mode="json", exclude={"event_type", "actor_id"}),
        source_module=source_module,
    )


class EventBus:
    """Queue-backed dispatcher with global and per-EventType subscribers.

    ``publish`` never waits on subscribers: events go onto a queue drained by
    one background worker. A failing subscriber is logged and does not stop
    the others.
    """

    def __init__(self) -> None:
        self._global: list[EventHandler] = []
        self._typed: defaultdict[EventType, list[EventHandler]] = defaultdict(list)
        self._queue: asyncio.Queue[SystemEvent] | None = None
        self._worker: asyncio.Task[None] | None = None

    # ── Subscriptions ────────────────────────────────────────────────

    def subscribe(self, handler: EventHandler, event_types: list[EventType] | None = None) -> None:
        if event_types is None:
            self._global.append(handler)
            logger.info("Audit subscriber registered for all events: %s", handler.__name__)
            return
        for event_type in event_types:
            self._typed[event_type].append(handler)
        logger.info("Audit subscriber %s registered for %s", handler.__name__, [t.value for t in event_types])

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._global:
            self._global.remove(handler)
        for handlers in self._typed.values():
            if handler in handlers:
                handlers.remove(handler)

    def handlers_for(self, event_type: EventType) -> list[EventHandler]:
        return [*self._global, *self._typed.get(event_type, [])]

    # ── Publishing ───────────────────────────────────────────────────

    async def publish(self, event: SystemEvent) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._ensure_worker()
        await self._queue.put(event)
        logger.debug("Event queued: %s (quote=%s)", event.event_type.value, event.quote_id)

    async def dispatch(self, event: SystemEvent) -> None:
        """Deliver one event to its subscribers concurrently."""
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            return
        await asyncio.gather(*(self._deliver(handler, event) for handler in handlers))

    @staticmethod
    async def _deliver(handler: EventHandler, event: SystemEvent) -> None:
        try:
            await handler(event)
        except Exception:
            logger.exception("Subscriber %s failed for %s", handler.__name__, event.event_type.value)

    # ── Worker lifecycle ─────────────────────────────────────────────

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())
            logger.info("Event worker started")

    async def _drain(self) -> None:
        while self._queue is not None:
            try:
                event = await self._queue.get()
            except asyncio.CancelledError:
                logger.info("Event worker shutting down")
                break
            try:
                await self.dispatch(event)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._ensure_worker()
        logger.info(
            "Event bus started with %d global + %d typed subscribers",
            len(self._global),
            sum(len(v) for v in self._typed.values()),
        )

    async def stop(self) -> None:
        """Deliver everything already queued, then stop the worker."""
        if self._queue is not None:
            await self._queue.join()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None
        self._queue = None
        logger.info("Event bus stopped")


# Process-wide bus used by the module-level helpers below
bus = EventBus()


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    bus.subscribe(handler, event_types)


def unsubscribe(handler: EventHandler) -> None:
    bus.unsubscribe(handler)


async def emit(event: SystemEvent) -> None:
    """Queue an event for all matching subscribers."""
    await bus.publish(event)


async def emit_nowait(event: SystemEvent) -> None:
    """Deliver an event immediately, bypassing the queue."""
    await bus.dispatch(event)


async def start_event_system() -> None:
    await bus.start()


async def stop_event_system() -> None:
    await bus.stop()
