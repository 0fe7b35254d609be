"""Event emitter and subscriber system.

Async pub/sub for SystemEvents. The eligibility engine, activation trigger,
notification dispatcher and batch jobs emit events; the audit subscriber
persists every one of them.

Usage:
    from src.observability.events import emit

    await emit(SystemEvent(
        event_type=EventType.TARGET_ACTIVATED,
        customer_id=42,
        data={"target_code": "BOMBE"},
    ))

    # At startup:
    from src.observability.events import subscribe

    subscribe(audit_on_event)  # async def handler(event: SystemEvent) -> None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from src.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]

# ── Internal state ───────────────────────────────────────────────────

_subscribers: list[EventHandler] = []
_type_subscribers: dict[EventType, list[EventHandler]] = {}
_queue: asyncio.Queue[SystemEvent] | None = None
_worker_task: asyncio.Task[None] | None = None


# ── Public API ───────────────────────────────────────────────────────


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register an event handler.

    Args:
        handler: Async function that accepts a SystemEvent.
        event_types: If provided, handler only receives these event types.
                     If None, handler receives ALL events.
    """
    if event_types is None:
        if handler not in _subscribers:
            _subscribers.append(handler)
        logger.info("Registered global event subscriber: %s", handler.__name__)
        return

    for et in event_types:
        handlers = _type_subscribers.setdefault(et, [])
        if handler not in handlers:
            handlers.append(handler)
    logger.info(
        "Registered event subscriber %s for types: %s",
        handler.__name__,
        [t.value for t in event_types],
    )


def unsubscribe(handler: EventHandler) -> None:
    """Remove a previously registered handler."""
    if handler in _subscribers:
        _subscribers.remove(handler)
    for handlers in _type_subscribers.values():
        if handler in handlers:
            handlers.remove(handler)


async def emit(event: SystemEvent) -> None:
    """Publish a SystemEvent to all subscribers.

    Events go through an async queue drained by a background worker, so an
    evaluation is never held up by a slow subscriber.
    """
    global _queue
    if _queue is None:
        _queue = asyncio.Queue()
    _ensure_worker()

    await _queue.put(event)
    logger.debug("Event emitted: %s (customer=%s)", event.event_type.value, event.customer_id)


# ── Background worker ────────────────────────────────────────────────


def _ensure_worker() -> None:
    """Start the background event worker if not already running."""
    global _worker_task
    if _worker_task is None or _worker_task.done():
        _worker_task = asyncio.create_task(_event_worker())
        logger.info("Event worker started")


async def _event_worker() -> None:
    """Drain the event queue and dispatch to subscribers until cancelled."""
    if _queue is None:
        return

    while True:
        try:
            event = await _queue.get()
        except asyncio.CancelledError:
            logger.info("Event worker shutting down")
            break
        try:
            await _dispatch(event)
        except Exception:
            logger.exception("Error in event worker")
        finally:
            _queue.task_done()


async def _dispatch(event: SystemEvent) -> None:
    """Dispatch a single event to all matching subscribers."""
    handlers: list[EventHandler] = list(_subscribers)
    handlers.extend(_type_subscribers.get(event.event_type, []))

    if not handlers:
        return

    # Run all handlers concurrently; one failing subscriber never hides the others
    results = await asyncio.gather(
        *[_safe_call(handler, event) for handler in handlers],
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, Exception):
            logger.error("Event handler failed for %s: %s", event.event_type.value, result)


async def _safe_call(handler: EventHandler, event: SystemEvent) -> None:
    """Call a handler with error isolation."""
    try:
        await handler(event)
    except Exception:
        logger.exception("Handler %s failed for event %s", handler.__name__, event.event_type.value)
        raise


# ── Lifecycle ────────────────────────────────────────────────────────


async def start_event_system() -> None:
    """Initialize the event system. Call during FastAPI lifespan startup."""
    global _queue
    _queue = asyncio.Queue()
    _ensure_worker()
    logger.info(
        "Event system started with %d global + %d typed subscribers",
        len(_subscribers),
        sum(len(v) for v in _type_subscribers.values()),
    )


async def stop_event_system(drain_timeout: float = 10.0) -> None:
    """Drain pending events, then stop the worker.

    A stuck subscriber cannot hold shutdown for longer than `drain_timeout`;
    whatever is still queued then is dropped with a warning.
    """
    global _worker_task, _queue

    if _queue is not None:
        try:
            await asyncio.wait_for(_queue.join(), timeout=drain_timeout)
        except TimeoutError:
            logger.warning(
                "Event queue not drained after %.0fs, dropping %d events",
                drain_timeout,
                _queue.qsize(),
            )

    if _worker_task is not None and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass

    _worker_task = None
    _queue = None
    logger.info("Event system stopped")
