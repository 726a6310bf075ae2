"""
Core framework for motiontrack.

This package provides the fundamental components around the motion engine:
- Event system with typed event definitions
- Service registry and lifecycle management
- Configuration management
- Timers on the engine clock
- Observability and tracing
"""

from .events import EventType, BaseEvent
from .registry import EventRegistry, ServiceRegistry
from .bus import EventBus
from .tracing import EventTracer
from .service import BaseService
from .scheduler import Scheduler
from .config import get_config, ApplicationConfig, EngineConfig

__all__ = [
    'EventType',
    'BaseEvent',
    'EventRegistry',
    'ServiceRegistry',
    'EventBus',
    'EventTracer',
    'BaseService',
    'Scheduler',
    'get_config',
    'ApplicationConfig',
    'EngineConfig',
]
