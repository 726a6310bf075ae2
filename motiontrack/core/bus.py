"""
In-process event bus.

Events are validated against the registry, recorded by the tracer, then handed to
every matching subscriber concurrently. A subscriber that raises is logged and
skipped; it never affects delivery to the others or the publisher.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from .events import BaseEvent, EventType
from .registry import EventRegistry
from .tracing import EventTracer

EventHandler = Callable[[BaseEvent], Awaitable[None]]

class EventBus:
    """Typed publish/subscribe hub with per-type and wildcard subscribers."""

    def __init__(self, registry: EventRegistry, tracer: Optional[EventTracer] = None):
        self.registry = registry
        self.tracer = tracer
        self.subscribers: Dict[EventType, List[EventHandler]] = {}
        self.wildcard_subscribers: List[EventHandler] = []
        self.logger = logging.getLogger(__name__)

    def _handlers_for(self, event_type: EventType) -> List[EventHandler]:
        return list(self.subscribers.get(event_type, ())) + list(self.wildcard_subscribers)

    async def publish(self, event: BaseEvent, sender: str) -> None:
        """
        Validate, trace and deliver one event.

        Unregistered or mismatched events are logged and dropped.

        Args:
            event: the event; its producer_name is stamped with `sender` if unset
            sender: name of the publishing service
        """
        if not event.producer_name:
            event = event.model_copy(update={"producer_name": sender})

        try:
            self.registry.validate_schema(event)
        except (ValueError, TypeError) as e:
            self.logger.error(f"Dropping event from {sender}: {e}")
            return

        if self.tracer is not None:
            self.tracer.record_event(event)

        event_type = EventType(event.type)
        handlers = self._handlers_for(event_type)
        if not handlers:
            self.logger.debug(f"{event_type.value} has no subscribers")
            return

        await asyncio.gather(*(self._deliver(handler, event) for handler in handlers))

    async def _deliver(self, handler: EventHandler, event: BaseEvent) -> None:
        try:
            await handler(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Handler {getattr(handler, '__qualname__', handler)} failed on "
                              f"{EventType(event.type).value}: {e}", exc_info=True)

    def subscribe(self, event_type: Optional[EventType], handler: EventHandler, service_name: str) -> None:
        """Subscribe to one event type, or to every event when event_type is None."""
        if event_type is None:
            self.wildcard_subscribers.append(handler)
            self.logger.debug(f"{service_name} subscribed to all events")
            return
        event_type = EventType(event_type)
        self.subscribers.setdefault(event_type, []).append(handler)
        self.registry.register_consumer(service_name, event_type)
        self.logger.debug(f"{service_name} subscribed to {event_type.value}")

    def unsubscribe(self, event_type: Optional[EventType], handler: EventHandler) -> None:
        if event_type is None:
            if handler in self.wildcard_subscribers:
                self.wildcard_subscribers.remove(handler)
            return
        handlers = self.subscribers.get(EventType(event_type), [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self.subscribers.pop(EventType(event_type), None)

    def get_subscribers(self, event_type: EventType) -> Set[EventHandler]:
        return set(self._handlers_for(EventType(event_type)))
