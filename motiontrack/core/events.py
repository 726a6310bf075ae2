"""
Typed events for motiontrack.

Every message on the bus is a frozen pydantic model deriving from BaseEvent and
tagged with one EventType value.
"""

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

class EventType(str, Enum):
    """Event tags. Plain strings so events dump straight to JSON."""
    # Commands
    CAPTURE_COMMAND = "capture_command"

    # Engine output
    ENGINE_SNAPSHOT = "engine_snapshot"
    RECORDING_PHASE_CHANGED = "recording_phase_changed"

    # Sessions
    SESSION_COMPLETED = "session_completed"
    SESSION_PERSIST_FAILED = "session_persist_failed"

    # Sensor
    CALIBRATION_FAILED = "calibration_failed"
    FEED_DISCONNECTED = "feed_disconnected"

    # Process
    APPLICATION_STARTUP_COMPLETED = "application_startup_completed"
    SERVICE_ERROR = "service_error"
    SERVICE_STATE_CHANGED = "service_state_changed"

def new_trace_id() -> str:
    return uuid.uuid4().hex

class BaseEvent(BaseModel):
    """
    Common metadata carried by every event.

    Events are immutable once created: observers receive a copy of engine state,
    never a live reference.
    """
    model_config = ConfigDict(
        extra="allow",
        # enum fields hold their string values
        use_enum_values=True,
        frozen=True,
        arbitrary_types_allowed=True,
    )

    type: EventType
    producer_name: str = ""
    timestamp: float = Field(default_factory=time.time)
    trace_id: Optional[str] = Field(default_factory=new_trace_id)
