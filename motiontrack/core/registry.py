"""
Registries for event schemas and services.

EventRegistry is the source of truth for which event classes may be published
and who produces or consumes them. ServiceRegistry tracks service instances,
their dependencies and their lifecycle state.
"""

import logging
from typing import Any, Dict, Optional, Set, Type

from .events import BaseEvent, EventType

class EventRegistry:
    """Event type -> schema, description, producers and consumers."""

    def __init__(self):
        self._schemas: Dict[EventType, Type[BaseEvent]] = {}
        self._descriptions: Dict[EventType, str] = {}
        self._producers: Dict[EventType, Set[str]] = {}
        self._consumers: Dict[EventType, Set[str]] = {}
        self._logger = logging.getLogger(__name__)

    def register_event(self, event_type: EventType, event_schema: Type[BaseEvent], description: str) -> None:
        """Register (or replace) the pydantic class that events of `event_type` must be."""
        event_type = EventType(event_type)
        self._schemas[event_type] = event_schema
        self._descriptions[event_type] = description
        self._logger.debug(f"Registered {event_type.value} -> {event_schema.__name__}")

    def register_producer(self, service_name: str, event_type: EventType) -> None:
        self._producers.setdefault(EventType(event_type), set()).add(service_name)

    def register_consumer(self, service_name: str, event_type: EventType) -> None:
        self._consumers.setdefault(EventType(event_type), set()).add(service_name)

    def validate_schema(self, event: BaseEvent) -> bool:
        """
        Check an event against its registered class.

        Raises:
            ValueError: the event type was never registered
            TypeError: the event is not an instance of the registered class
        """
        event_type = EventType(event.type)
        schema = self._schemas.get(event_type)
        if schema is None:
            raise ValueError(f"Unknown event type: {event_type.value}")
        if not isinstance(event, schema):
            raise TypeError(f"{type(event).__name__} is not a {schema.__name__} "
                            f"(registered for {event_type.value})")
        return True

    def get_event_flow(self, event_type: EventType) -> Dict[str, Set[str]]:
        event_type = EventType(event_type)
        return {
            'producers': set(self._producers.get(event_type, ())),
            'consumers': set(self._consumers.get(event_type, ())),
        }

    def get_event_schema(self, event_type: EventType) -> Optional[Type[BaseEvent]]:
        return self._schemas.get(EventType(event_type))

    def get_description(self, event_type: EventType) -> Optional[str]:
        return self._descriptions.get(EventType(event_type))

    def get_all_event_types(self) -> Set[EventType]:
        return set(self._schemas)

class ServiceRegistry:
    """Service name -> instance, lifecycle state and dependencies."""

    def __init__(self):
        self._services: Dict[str, Any] = {}
        self._states: Dict[str, str] = {}
        self._dependencies: Dict[str, Set[str]] = {}
        self._logger = logging.getLogger(__name__)

    def register_service(self, service_name: str, service_instance: Any) -> None:
        self._services[service_name] = service_instance
        self.set_service_state(service_name, "registered")

    def register_dependency(self, service_name: str, depends_on: str) -> None:
        """Record that `service_name` needs `depends_on` running before it starts."""
        self._dependencies.setdefault(service_name, set()).add(depends_on)

    def set_service_state(self, service_name: str, state: str) -> None:
        self._states[service_name] = state
        self._logger.debug(f"{service_name}: {state}")

    def get_service(self, service_name: str) -> Optional[Any]:
        return self._services.get(service_name)

    def get_service_state(self, service_name: str) -> Optional[str]:
        return self._states.get(service_name)

    def get_dependencies(self, service_name: str) -> Set[str]:
        return set(self._dependencies.get(service_name, ()))

    def get_all_services(self) -> Dict[str, Any]:
        return dict(self._services)
