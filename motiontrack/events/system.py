"""
Process-level events: startup, service lifecycle and service errors.

These are registered by every service (and by the application) through
register_system_events(), so they can always be published.
"""

from typing import Any, Dict, Literal, Optional

from motiontrack import __version__
from motiontrack.core.events import BaseEvent, EventType

class ApplicationStartupCompletedEvent(BaseEvent):
    """All services are running; samples will now be processed."""
    type: Literal[EventType.APPLICATION_STARTUP_COMPLETED] = EventType.APPLICATION_STARTUP_COMPLETED
    version: str = __version__
    session_directory: Optional[str] = None

class ServiceStateChangedEvent(BaseEvent):
    """A service moved to started, stopping, stopped or error."""
    type: Literal[EventType.SERVICE_STATE_CHANGED] = EventType.SERVICE_STATE_CHANGED
    service_name: str
    state: str
    error: Optional[str] = None

class ServiceErrorEvent(BaseEvent):
    """
    An unexpected exception inside a service.

    The service keeps running; `details` carries context such as the kind of
    queue item that was being applied.
    """
    type: Literal[EventType.SERVICE_ERROR] = EventType.SERVICE_ERROR
    service_name: str
    error_type: str
    error_message: str
    details: Optional[Dict[str, Any]] = None

_SYSTEM_EVENTS = {
    EventType.APPLICATION_STARTUP_COMPLETED: (ApplicationStartupCompletedEvent, "Application startup completed"),
    EventType.SERVICE_STATE_CHANGED: (ServiceStateChangedEvent, "Service lifecycle state changed"),
    EventType.SERVICE_ERROR: (ServiceErrorEvent, "Unexpected error inside a service"),
}

def register_system_events(registry) -> None:
    """Register the system event schemas with an EventRegistry."""
    for event_type, (schema, description) in _SYSTEM_EVENTS.items():
        registry.register_event(event_type, schema, description)
