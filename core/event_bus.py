"""
Event Bus
=========

Typed event channel between the statistical arbitrage strategy and its
observers (orchestrator, dashboards, audit sinks).

Features:
- Subscription per event type, or to every type
- Sync and async handlers
- Handler errors are isolated and logged, never propagated to the publisher
- Bounded event history for audit
- Metrics for monitoring

Dispatch is direct: publish() awaits every handler before returning, so
event order matches the order of the strategy's state changes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Union

from core.events import Event, EventType


logger = logging.getLogger(__name__)


EventHandler = Callable[[Event], Union[None, Awaitable[None]]]


@dataclass
class EventBusMetrics:
    """Counters for bus monitoring."""
    total_events_published: int = 0
    total_handler_calls: int = 0
    total_handler_errors: int = 0
    events_without_handlers: int = 0
    last_event_time: datetime | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/monitoring."""
        return {
            "total_published": self.total_events_published,
            "total_handler_calls": self.total_handler_calls,
            "total_handler_errors": self.total_handler_errors,
            "events_without_handlers": self.events_without_handlers,
            "last_event_time": (
                self.last_event_time.isoformat() if self.last_event_time else None
            ),
        }


class EventBus:
    """
    Central event channel.

    Responsibilities:
    - Route events to subscribed handlers
    - Keep an audit trail of recent events
    - Shield publishers from handler failures
    """

    def __init__(self, max_history: int = 1000):
        self._subscribers: dict[EventType, list[EventHandler]] = defaultdict(list)
        self._global_subscribers: list[EventHandler] = []
        self._event_history: deque[Event] = deque(maxlen=max_history)
        self._metrics = EventBusMetrics()

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe a handler to an event type."""
        self._subscribers[event_type].append(handler)
        logger.debug(f"Subscribed handler to {event_type.value}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """Subscribe a handler to every event type."""
        self._global_subscribers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe a handler from an event type."""
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)

    def unsubscribe_all(self, handler: EventHandler) -> None:
        """Remove a handler registered with subscribe_all."""
        if handler in self._global_subscribers:
            self._global_subscribers.remove(handler)

    async def publish(self, event: Event) -> int:
        """
        Publish an event and dispatch it to every matching handler.

        Returns:
            Number of handlers that completed without error
        """
        self._event_history.append(event)
        self._metrics.total_events_published += 1
        self._metrics.last_event_time = datetime.now(timezone.utc)

        return await self._dispatch(event)

    async def _dispatch(self, event: Event) -> int:
        """Dispatch event to handlers, logging and counting failures."""
        handlers = list(self._subscribers.get(event.event_type, []))
        handlers.extend(self._global_subscribers)

        if not handlers:
            logger.debug(f"No handlers for event type: {event.event_type.value}")
            self._metrics.events_without_handlers += 1
            return 0

        succeeded = 0
        pending = []
        for handler in handlers:
            self._metrics.total_handler_calls += 1
            try:
                result = handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event.event_type.value}: {e}")
                self._metrics.total_handler_errors += 1
                continue

            if inspect.isawaitable(result):
                pending.append(result)
            else:
                succeeded += 1

        if pending:
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Handler error for {event.event_type.value}: {result}")
                    self._metrics.total_handler_errors += 1
                else:
                    succeeded += 1

        return succeeded

    def get_event_history(
        self,
        event_type: EventType | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Get recent event history for audit."""
        history = list(self._event_history)

        if event_type:
            history = [e for e in history if e.event_type == event_type]

        return history[-limit:]

    @property
    def metrics(self) -> EventBusMetrics:
        """Current bus metrics."""
        return self._metrics

    def get_status(self) -> dict[str, Any]:
        """Get event bus status for monitoring."""
        return {
            "subscriptions": {
                event_type.value: len(handlers)
                for event_type, handlers in self._subscribers.items()
                if handlers
            },
            "global_subscribers": len(self._global_subscribers),
            "history_size": len(self._event_history),
            "metrics": self._metrics.to_dict(),
        }

    def reset_metrics(self) -> None:
        """Reset metrics counters."""
        self._metrics = EventBusMetrics()
