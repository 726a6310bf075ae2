"""
Motion engine.

Single-writer, synchronous composition of the motion algorithms and the recording
orchestrator. Every input (acceleration sample, angular-rate sample, clock tick,
command, persistence result) is applied one at a time; due timers fire first, on
the event's own timestamp, so all inputs must be stamped on one clock. After each
event every observer receives a fresh, immutable EngineSnapshot.

The engine is deterministic given its inputs, which is what the unit tests rely on.
The asyncio service in motiontrack.services.engine_service serializes real inputs
onto it.
"""

import logging
from dataclasses import dataclass
from math import isfinite
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from motiontrack.core.config import EngineConfig
from motiontrack.core.scheduler import Scheduler
from motiontrack.motion.calibrator import CalibrationError, Calibrator
from motiontrack.motion.detector import MotionStateDetector, ThresholdPreset
from motiontrack.motion.integrator import VelocityIntegrator
from motiontrack.motion.models import (CalibrationResult, MotionState, RecordingPhase, Sample,
                                       TimestampCursor, as_vector, zero_vector)
from motiontrack.motion.spin import SpinEstimator
from motiontrack.motion.units import SpeedUnit, convert_speed, g_to_mps2
from motiontrack.recording.orchestrator import RecordingOrchestrator
from motiontrack.recording.session import Session, SessionSummary
from motiontrack.recording.store import SessionStore

@dataclass(frozen=True)
class EngineSnapshot:
    """Immutable view of the engine after one processed event."""
    timestamp: float
    phase: RecordingPhase
    motion_state: MotionState
    motion_detected: bool
    current_speed: float                  # in speed_unit
    speed_unit: SpeedUnit
    current_rpm: float
    spin_axis: Tuple[float, float, float]
    rms: float
    baseline_rms: float
    log_duration: float
    session_summary: Optional[SessionSummary] = None
    last_error: Optional[str] = None

# Notices emitted alongside snapshots, consumed by the service layer

@dataclass(frozen=True)
class PhaseChanged:
    previous: RecordingPhase
    phase: RecordingPhase
    timestamp: float

@dataclass(frozen=True)
class SessionFinalized:
    session: Session

@dataclass(frozen=True)
class PersistFailed:
    session_id: str
    error: str

@dataclass(frozen=True)
class CalibrationFailed:
    error: str
    attempts: int

SnapshotObserver = Callable[[EngineSnapshot], None]
NoticeListener = Callable[[object], None]

class MotionEngine:
    """
    Online motion detection and dead-reckoning engine.

    Args:
        config: cycle configuration; start() may replace it while IDLE
        store: optional session store, called synchronously on finalize
        persister: optional asynchronous hand-off; when given, results must be
            reported back through persist_completed()
    """

    def __init__(self,
                 config: Optional[EngineConfig] = None,
                 store: Optional[SessionStore] = None,
                 persister: Optional[Callable[[Session], None]] = None):
        self.logger = logging.getLogger(__name__)
        self.store = store
        self.persister = persister
        self.scheduler = Scheduler()
        self.observers: List[SnapshotObserver] = []
        self.listeners: List[NoticeListener] = []
        self.now = float("-inf")

        self.config = config or EngineConfig()
        self._build_components(self.config)
        self.orchestrator = RecordingOrchestrator(
            self.scheduler,
            self.calibrator,
            self.config.recording,
            self.config.calibration,
            on_phase_change=self._on_phase_change,
            on_armed=self._on_armed,
            on_logging_started=self._on_logging_started,
            on_rearmed=self._on_rearmed,
            on_idle=self._on_idle,
            on_calibration_failed=self._on_calibration_failed,
            on_finalized=self._on_finalized,
            persister=self._persist,
        )

    def _build_components(self, config: EngineConfig) -> None:
        sampling = config.sampling
        self.acceleration_cursor = TimestampCursor(sampling.min_dt, sampling.max_dt, sampling.max_gap)
        self.angular_cursor = TimestampCursor(sampling.min_dt, sampling.max_dt, sampling.max_gap)
        self.calibrator = Calibrator(config.calibration, config.detector, sampling.acceleration_rate_hz)
        self.detector = MotionStateDetector(config.detector, sampling.acceleration_rate_hz)
        self.integrator = VelocityIntegrator(config.integrator)
        self.spin = SpinEstimator(config.spin)
        self.gravity = zero_vector()

    # Observation

    def add_observer(self, callback: SnapshotObserver) -> None:
        self.observers.append(callback)

    def add_listener(self, callback: NoticeListener) -> None:
        self.listeners.append(callback)

    @property
    def phase(self) -> RecordingPhase:
        return self.orchestrator.phase

    @property
    def motion_state(self) -> MotionState:
        phase = self.orchestrator.phase
        if phase == RecordingPhase.IDLE:
            return MotionState.IDLE
        if phase == RecordingPhase.CALIBRATING:
            return MotionState.CALIBRATING
        return self.detector.state

    @property
    def dropped_samples(self) -> int:
        return self.acceleration_cursor.dropped + self.angular_cursor.dropped

    def snapshot(self) -> EngineSnapshot:
        now = self.now if isfinite(self.now) else 0.0
        last_session = self.orchestrator.last_session
        unit = self.config.integrator.display_unit
        return EngineSnapshot(
            timestamp=now,
            phase=self.orchestrator.phase,
            motion_state=self.motion_state,
            motion_detected=self.motion_state == MotionState.MOVING,
            current_speed=convert_speed(self.integrator.speed, unit),
            speed_unit=unit,
            current_rpm=self.spin.rpm,
            spin_axis=tuple(float(v) for v in self.spin.axis),
            rms=self.detector.rms,
            baseline_rms=self.detector.baseline_rms,
            log_duration=self.orchestrator.log_duration(now),
            session_summary=last_session.summary.model_copy(deep=True) if last_session else None,
            last_error=self.orchestrator.last_error,
        )

    def _notify(self) -> EngineSnapshot:
        snapshot = self.snapshot()
        for observer in self.observers:
            observer(snapshot)
        return snapshot

    def _emit(self, notice) -> None:
        for listener in self.listeners:
            listener(notice)

    def _advance_clock(self, timestamp: float) -> float:
        """Move the engine clock forward (never back) and fire due timers."""
        if isfinite(timestamp) and timestamp > self.now:
            self.now = timestamp
            self.scheduler.advance(self.now)
        return self.now if isfinite(self.now) else timestamp

    # Sample inputs

    def on_acceleration(self, sample: Sample) -> EngineSnapshot:
        """
        Apply one acceleration sample (g).

        Non-finite or out-of-range samples are counted and dropped.
        """
        self._advance_clock(sample.timestamp)
        phase = self.orchestrator.phase
        if phase == RecordingPhase.IDLE:
            return self._notify()

        cursor = self.acceleration_cursor
        if not sample.within(self.config.sampling.max_abs_acceleration_g):
            cursor.skip(sample.timestamp)
            self.logger.debug(f"Dropping implausible acceleration sample at t={sample.timestamp}")
            return self._notify()
        first = cursor.last_timestamp is None
        dt = cursor.advance(sample.timestamp)
        if dt is None and not first:
            return self._notify()

        acceleration = g_to_mps2(as_vector(sample.vector))
        if phase == RecordingPhase.CALIBRATING:
            self.calibrator.add_sample(acceleration)
            return self._notify()

        corrected = acceleration - self.gravity
        previous = self.detector.state
        state = self.detector.on_sample(corrected, dt)
        if previous != MotionState.MOVING and state == MotionState.MOVING:
            self.orchestrator.motion_started(sample.timestamp)
        elif previous == MotionState.MOVING and state != MotionState.MOVING:
            self.orchestrator.motion_stopped(sample.timestamp)

        if self.orchestrator.phase == RecordingPhase.LOGGING and dt is not None:
            _, speed = self.integrator.on_sample(corrected, dt, state, self.detector.zupt, self.spin.rpm)
            self.orchestrator.record_speed(sample.timestamp, speed, corrected)
        return self._notify()

    def on_angular_rate(self, sample: Sample) -> EngineSnapshot:
        """Apply one angular-rate sample (deg/s). Only consumed while LOGGING."""
        self._advance_clock(sample.timestamp)
        if self.orchestrator.phase != RecordingPhase.LOGGING:
            return self._notify()

        cursor = self.angular_cursor
        if not sample.within(self.config.sampling.max_abs_angular_rate_dps):
            cursor.skip(sample.timestamp)
            self.logger.debug(f"Dropping implausible angular-rate sample at t={sample.timestamp}")
            return self._notify()
        first = cursor.last_timestamp is None
        if cursor.advance(sample.timestamp) is None and not first:
            return self._notify()

        angular_velocity = as_vector(sample.vector)
        rpm, axis = self.spin.on_sample(angular_velocity)
        self.orchestrator.record_spin(sample.timestamp, rpm, axis, angular_velocity)
        return self._notify()

    def tick(self, now: float) -> EngineSnapshot:
        """Clock event with no sample. Fires timers that are due."""
        self._advance_clock(now)
        return self._notify()

    # Commands

    def start(self, now: float, config: Optional[EngineConfig] = None) -> bool:
        """
        Begin a capture cycle (calibration first).

        Args:
            now: engine-clock time of the command
            config: optional replacement configuration, applied only while IDLE

        Returns:
            False if a cycle is already active
        """
        now = self._advance_clock(now)
        if self.orchestrator.is_active:
            self.orchestrator.start(now)
            self._notify()
            return False
        if config is not None:
            self.config = config
            self._build_components(config)
            self.orchestrator.configure(self.calibrator, config.recording, config.calibration)
        self._reset_cycle_state()
        started = self.orchestrator.start(now)
        self._notify()
        return started

    def stop(self, now: float) -> Optional[Session]:
        """End the cycle from any phase. Idempotent."""
        now = self._advance_clock(now)
        session = self.orchestrator.stop(now)
        self._notify()
        return session

    def force_stop_active_capture(self, now: float) -> Optional[Session]:
        now = self._advance_clock(now)
        session = self.orchestrator.force_stop_active_capture(now)
        self._notify()
        return session

    def feed_disconnected(self, now: float) -> Optional[Session]:
        now = self._advance_clock(now)
        session = self.orchestrator.feed_disconnected(now)
        self._notify()
        return session

    def set_motion_threshold(self, value: float) -> None:
        """
        Set the detector start margin (m/s^2) live. The stop margin keeps its ratio.

        Raises:
            ValueError: if value is not positive
        """
        self.detector.set_start_margin(value)
        self._notify()

    def apply_threshold_preset(self, preset: Union[ThresholdPreset, str]) -> None:
        """
        Set the start margin from a named sensitivity preset ("sensitive", "medium", "relaxed").

        Raises:
            ValueError: if the preset name is unknown
        """
        if not isinstance(preset, ThresholdPreset):
            try:
                preset = ThresholdPreset[str(preset).upper()]
            except KeyError:
                raise ValueError(f"Unknown threshold preset: {preset}") from None
        self.detector.apply_preset(preset)
        self._notify()

    def set_motion_end_delay(self, seconds: float) -> None:
        """
        Raises:
            ValueError: if seconds is negative
        """
        self.orchestrator.set_motion_end_delay(seconds)
        self._notify()

    def persist_completed(self, session_id: str, error: Optional[BaseException] = None) -> None:
        """Result of an asynchronous persister hand-off."""
        if error is not None:
            self._emit(PersistFailed(session_id, str(error)))
        self.orchestrator.persist_completed(session_id, error, self._advance_clock(self.now))
        self._notify()

    def retry_persist(self) -> int:
        count = self.orchestrator.retry_persist(self._advance_clock(self.now))
        self._notify()
        return count

    @property
    def pending_sessions(self):
        return dict(self.orchestrator.pending_sessions)

    # Orchestrator hooks

    def _persist(self, session: Session) -> None:
        error = None
        try:
            if self.persister is not None:
                self.persister(session)
                return
            if self.store is not None:
                self.store.save(session)
        except Exception as e:
            # any store or hand-off failure still moves the cycle on to READY
            error = e
            self.logger.warning(f"Persisting session {session.id} failed: {e!r}")
            self._emit(PersistFailed(session.id, str(e)))
        self.orchestrator.persist_completed(session.id, error, self._advance_clock(self.now))

    def _on_finalized(self, session: Session) -> None:
        self._emit(SessionFinalized(session))

    def _on_phase_change(self, previous: RecordingPhase, phase: RecordingPhase, timestamp: float) -> None:
        self._emit(PhaseChanged(previous, phase, timestamp))

    def _on_armed(self, result: CalibrationResult) -> None:
        self.gravity = np.asarray(result.gravity, dtype=np.float64)
        self.detector.reset()
        self.detector.seed_baseline(result.baseline_energy)

    def _on_logging_started(self) -> None:
        self.integrator.reset()
        self.spin.reset()
        self.angular_cursor.reset()

    def _on_rearmed(self) -> None:
        baseline = self.detector.baseline_rms
        self.detector.reset()
        self.detector.seed_baseline(baseline)
        self._on_logging_started()

    def _on_idle(self) -> None:
        self._reset_cycle_state()

    def _on_calibration_failed(self, error: CalibrationError) -> None:
        self._emit(CalibrationFailed(str(error), self.orchestrator.calibration_attempts + 1))

    def _reset_cycle_state(self) -> None:
        self.acceleration_cursor.reset()
        self.angular_cursor.reset()
        self.detector.reset()
        self.integrator.reset()
        self.spin.reset()
        self.gravity = zero_vector()
