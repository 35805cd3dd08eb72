"""
Event Bus: typed publish/subscribe channels for the canonical streams.

Each canonical stream (market data, trade tape, order status, positions,
connectivity) is an ``EventType``. Producers publish without blocking:
events are queued and delivered to subscribers by a background task
(``start()``) or on demand (``drain()``).

Features:
- Several independent subscribers per channel, priority ordered
- Async or sync handlers
- Error isolation (one failing handler does not starve the others)
- Bounded history and delivery statistics

Ordering is guaranteed within the bus queue, so emission order on a single
channel is preserved. Nothing is guaranteed across channels.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Coroutine, Dict, List, Optional, Union

from chankura_gateway.core.utils import now_ms
from chankura_gateway.infra.logging_cfg import LOGGER_NAME, log_event

log = logging.getLogger(LOGGER_NAME)


class EventType(Enum):
    MARKET_DATA = auto()    # OrderBook snapshot
    MARKET_TRADE = auto()   # MarketTrade from the public tape
    ORDER_STATUS = auto()   # OrderStatusUpdate
    POSITION = auto()       # PositionSnapshot
    CONNECTIVITY = auto()   # ConnectivityStatus


@dataclass
class Event:
    """
    Envelope around one canonical record.

    ``payload`` is the canonical object itself (OrderBook, MarketTrade, ...);
    ``source`` names the component that emitted it.
    """
    type: EventType
    payload: Any
    timestamp_ms: int = field(default_factory=now_ms)
    source: Optional[str] = None

    def __str__(self) -> str:
        return f"Event({self.type.name}, ts={self.timestamp_ms}, source={self.source})"


Handler = Union[
    Callable[[Event], Coroutine[Any, Any, None]],
    Callable[[Event], None],
]


@dataclass
class Subscription:
    handler: Handler
    priority: int = 0  # higher first
    filter_fn: Optional[Callable[[Event], bool]] = None
    name: Optional[str] = None


class EventBus:
    """
    Queue-backed pub/sub.

    Usage:
        bus = EventBus()
        bus.subscribe(EventType.ORDER_STATUS, on_order_update)
        asyncio.create_task(bus.start())

        await bus.emit(EventType.MARKET_DATA, book, source="market_poller")
        ...
        bus.stop()
    """

    DEFAULT_HISTORY_SIZE = 1000
    DEFAULT_QUEUE_SIZE = 0  # unbounded

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._subscribers: Dict[EventType, List[Subscription]] = {}
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=max(0, queue_size))
        self._running = False
        self._history_size = history_size
        self._history: List[Event] = []
        self._stats = {
            "events_published": 0,
            "events_processed": 0,
            "events_dropped": 0,
            "handler_errors": 0,
            "queue_high_water": 0,
        }

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        event_type: EventType,
        handler: Handler,
        priority: int = 0,
        filter_fn: Optional[Callable[[Event], bool]] = None,
        name: Optional[str] = None,
    ) -> Subscription:
        sub = Subscription(handler=handler, priority=priority, filter_fn=filter_fn, name=name)
        subs = self._subscribers.setdefault(event_type, [])
        # stable insert: after every existing subscriber with priority >= ours
        idx = len(subs)
        for i, existing in enumerate(subs):
            if existing.priority < priority:
                idx = i
                break
        subs.insert(idx, sub)
        log_event(
            log, "event_bus_subscribe", level=logging.DEBUG,
            event_type=event_type.name,
            handler_name=name or getattr(handler, "__name__", repr(handler)),
            total_subscribers=len(subs),
        )
        return sub

    def unsubscribe(self, event_type: EventType, subscription: Subscription) -> bool:
        subs = self._subscribers.get(event_type, [])
        if subscription in subs:
            subs.remove(subscription)
            return True
        return False

    def get_subscriber_count(self, event_type: EventType) -> int:
        return len(self._subscribers.get(event_type, []))

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish_sync(self, event: Event) -> bool:
        """Enqueue without awaiting. Returns False if the queue is full."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._stats["events_dropped"] += 1
            log_event(log, "event_bus_queue_full", level=logging.WARNING, event_type=event.type.name)
            return False
        self._stats["events_published"] += 1
        qsize = self._queue.qsize()
        if qsize > self._stats["queue_high_water"]:
            self._stats["queue_high_water"] = qsize
        return True

    async def emit(self, event_type: EventType, payload: Any, source: Optional[str] = None) -> bool:
        return self.publish_sync(Event(type=event_type, payload=payload, source=source))

    def emit_sync(self, event_type: EventType, payload: Any, source: Optional[str] = None) -> bool:
        return self.publish_sync(Event(type=event_type, payload=payload, source=source))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Deliver events until stop(). Run as a background task."""
        self._running = True
        log_event(log, "event_bus_started", level=logging.DEBUG)
        while self._running:
            try:
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue
                await self._process_event(event)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log_event(log, "event_bus_error", level=logging.ERROR, error=str(exc), error_type=type(exc).__name__)
        self._running = False
        log_event(log, "event_bus_stopped", level=logging.DEBUG)

    def stop(self) -> None:
        self._running = False

    async def drain(self, timeout: float = 5.0) -> int:
        """Deliver everything currently queued. Returns the number delivered."""
        count = 0
        deadline = time.time() + timeout
        while not self._queue.empty() and time.time() < deadline:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            await self._process_event(event)
            count += 1
        return count

    async def _process_event(self, event: Event) -> None:
        if self._history_size > 0:
            self._history.append(event)
            if len(self._history) > self._history_size:
                del self._history[0]

        for sub in list(self._subscribers.get(event.type, [])):
            if sub.filter_fn and not sub.filter_fn(event):
                continue
            try:
                result = sub.handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._stats["handler_errors"] += 1
                log_event(
                    log, "event_bus_handler_error", level=logging.ERROR,
                    event_type=event.type.name,
                    handler_name=sub.name or "unknown",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
        self._stats["events_processed"] += 1

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_history(self, event_type: Optional[EventType] = None, limit: int = 100) -> List[Event]:
        events = self._history
        if event_type is not None:
            events = [e for e in events if e.type == event_type]
        return events[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "queue_size": self._queue.qsize(),
            "history_size": len(self._history),
            "subscriber_count": sum(len(s) for s in self._subscribers.values()),
            "running": self._running,
        }

    @property
    def is_running(self) -> bool:
        return self._running
