"""
Motion engine events for motiontrack.

This module defines the events published by the engine service (snapshots, phase
changes, session results) and the capture command event it consumes.
"""

from enum import Enum
from typing import Literal, Optional, Tuple

from motiontrack.core.events import BaseEvent, EventType
from motiontrack.recording.session import SessionSummary

class CaptureCommand(str, Enum):
    """Commands accepted through CaptureCommandEvent."""
    START = "start"
    STOP = "stop"
    FORCE_STOP = "force_stop"
    SET_MOTION_THRESHOLD = "set_motion_threshold"
    SET_MOTION_END_DELAY = "set_motion_end_delay"
    APPLY_THRESHOLD_PRESET = "apply_threshold_preset"
    RETRY_PERSIST = "retry_persist"

class CaptureCommandEvent(BaseEvent):
    """
    Event published to control the capture cycle.

    `value` carries the argument of the tuning commands (m/s^2 for the motion
    threshold, seconds for the motion end delay). `preset` names the sensitivity
    preset for APPLY_THRESHOLD_PRESET ("sensitive", "medium" or "relaxed").
    """
    type: Literal[EventType.CAPTURE_COMMAND] = EventType.CAPTURE_COMMAND
    command: CaptureCommand
    value: Optional[float] = None
    preset: Optional[str] = None

class EngineSnapshotEvent(BaseEvent):
    """
    Event published with the latest engine snapshot.

    Published at most every snapshot_interval seconds, and always on a phase change.
    """
    type: Literal[EventType.ENGINE_SNAPSHOT] = EventType.ENGINE_SNAPSHOT
    engine_time: float
    phase: str
    motion_state: str
    motion_detected: bool
    current_speed: float
    speed_unit: str
    current_rpm: float
    spin_axis: Tuple[float, float, float]
    rms: float
    baseline_rms: float
    log_duration: float
    session_summary: Optional[SessionSummary] = None
    last_error: Optional[str] = None

    @classmethod
    def from_snapshot(cls, snapshot) -> "EngineSnapshotEvent":
        return cls(
            engine_time=snapshot.timestamp,
            phase=snapshot.phase.value,
            motion_state=snapshot.motion_state.value,
            motion_detected=snapshot.motion_detected,
            current_speed=snapshot.current_speed,
            speed_unit=snapshot.speed_unit.value,
            current_rpm=snapshot.current_rpm,
            spin_axis=snapshot.spin_axis,
            rms=snapshot.rms,
            baseline_rms=snapshot.baseline_rms,
            log_duration=snapshot.log_duration,
            session_summary=snapshot.session_summary,
            last_error=snapshot.last_error,
        )

class RecordingPhaseChangedEvent(BaseEvent):
    """Event published on every recording phase transition."""
    type: Literal[EventType.RECORDING_PHASE_CHANGED] = EventType.RECORDING_PHASE_CHANGED
    phase: str
    previous_phase: str
    engine_time: float

class SessionCompletedEvent(BaseEvent):
    """Event published when a burst has been finalized into a session."""
    type: Literal[EventType.SESSION_COMPLETED] = EventType.SESSION_COMPLETED
    session_id: str
    duration: float
    sample_count: int
    summary: SessionSummary

class SessionPersistFailedEvent(BaseEvent):
    """
    Event published when a session could not be stored.

    The session stays in memory and can be re-submitted with the retry_persist command.
    """
    type: Literal[EventType.SESSION_PERSIST_FAILED] = EventType.SESSION_PERSIST_FAILED
    session_id: str
    error_message: str

class CalibrationFailedEvent(BaseEvent):
    """Event published when calibration failed after its automatic retry."""
    type: Literal[EventType.CALIBRATION_FAILED] = EventType.CALIBRATION_FAILED
    error_message: str
    attempts: int

class FeedDisconnectedEvent(BaseEvent):
    """Event published when the sample feed ended or failed."""
    type: Literal[EventType.FEED_DISCONNECTED] = EventType.FEED_DISCONNECTED
    reason: Optional[str] = None
