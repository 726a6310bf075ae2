"""
Service base class for motiontrack.

A service is a long-running asyncio component attached to the event bus. Subclasses
declare the events they publish (PRODUCES_EVENTS) and the events they handle
(CONSUMES_EVENTS); the base class registers the schemas, wires the subscriptions
on start and removes them on stop.
"""

import asyncio
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Set

import structlog

from .bus import EventBus
from .events import BaseEvent, EventType
from .registry import ServiceRegistry

class ServiceState(str, Enum):
    """Lifecycle states reported through ServiceStateChangedEvent."""
    STARTED = "started"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"

class BaseService(ABC):
    """
    Lifecycle, event wiring and structured logging shared by every service.

    Class attributes:
        PRODUCES_EVENTS: EventType -> {'schema': event class, 'description': str}
        CONSUMES_EVENTS: EventType -> name of the handler coroutine
        REQUIRED_SERVICES: names of services that must be running before start()
    """

    PRODUCES_EVENTS: ClassVar[Dict[EventType, Dict[str, Any]]] = {}
    CONSUMES_EVENTS: ClassVar[Dict[EventType, str]] = {}
    REQUIRED_SERVICES: ClassVar[Set[str]] = set()

    def __init__(self,
                 event_bus: EventBus,
                 service_registry: ServiceRegistry,
                 name: Optional[str] = None,
                 config: Optional[Any] = None):
        from motiontrack.events.system import register_system_events

        self.name = name or type(self).__name__
        self.event_bus = event_bus
        self.service_registry = service_registry
        self.config = config
        self.logger = structlog.get_logger(service=self.name)

        self._running = False
        self._lock = asyncio.Lock()

        registry = event_bus.registry
        register_system_events(registry)
        for event_type, info in self.PRODUCES_EVENTS.items():
            registry.register_producer(self.name, event_type)
            if 'schema' in info:
                registry.register_event(event_type, info['schema'], info.get('description', ""))

        service_registry.register_service(self.name, self)
        for dependency in self.REQUIRED_SERVICES:
            service_registry.register_dependency(self.name, dependency)

    @property
    def is_running(self) -> bool:
        return self._running

    def _handlers(self):
        return [(event_type, getattr(self, handler_name))
                for event_type, handler_name in self.CONSUMES_EVENTS.items()]

    async def start(self) -> None:
        """
        Subscribe the declared handlers and mark the service running.

        Subclasses call super().start() before starting their own tasks.

        Raises:
            RuntimeError: if a required service is not running
        """
        async with self._lock:
            if self._running:
                self.logger.warning("start() called on a running service")
                return

            missing = [d for d in self.REQUIRED_SERVICES
                       if self.service_registry.get_service_state(d) != 'running']
            if missing:
                raise RuntimeError(f"{self.name} requires services that are not running: {missing}")

            for event_type, handler in self._handlers():
                self.event_bus.subscribe(event_type, handler, self.name)

            self._running = True
            self.service_registry.set_service_state(self.name, 'running')
            self.logger.info("Service started", consumes=[EventType(t).value for t in self.CONSUMES_EVENTS])
        await self.publish_service_state(ServiceState.STARTED)

    async def stop(self) -> None:
        """Unsubscribe and mark the service stopped. Subclasses call this last."""
        async with self._lock:
            if not self._running:
                self.logger.warning("stop() called on a stopped service")
                return
            await self.publish_service_state(ServiceState.STOPPING)

            for event_type, handler in self._handlers():
                self.event_bus.unsubscribe(event_type, handler)

            self._running = False
            self.service_registry.set_service_state(self.name, 'stopped')
            self.logger.info("Service stopped")
        await self.publish_service_state(ServiceState.STOPPED)

    async def publish(self, event: BaseEvent) -> None:
        """Publish on the bus as this service. Dropped with a warning once stopped."""
        if not self._running:
            self.logger.warning("Dropping event published while stopped", event_type=EventType(event.type).value)
            return
        await self.event_bus.publish(event, self.name)

    async def publish_service_state(self, state: ServiceState, error: Optional[str] = None) -> None:
        from motiontrack.events.system import ServiceStateChangedEvent

        await self.event_bus.publish(
            ServiceStateChangedEvent(service_name=self.name, state=ServiceState(state).value, error=error),
            self.name,
        )

    async def report_error(self, error: BaseException, **details) -> None:
        """Log an unexpected error and publish it as a ServiceErrorEvent."""
        from motiontrack.events.system import ServiceErrorEvent

        self.logger.error("Service error", error=str(error), error_type=type(error).__name__, **details)
        await self.event_bus.publish(
            ServiceErrorEvent(service_name=self.name,
                              error_type=type(error).__name__,
                              error_message=str(error),
                              details=details or None),
            self.name,
        )

    @abstractmethod
    async def handle_event(self, event: BaseEvent) -> None:
        """Entry point for the events listed in CONSUMES_EVENTS."""
