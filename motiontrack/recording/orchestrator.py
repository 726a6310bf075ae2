r"""
Recording Orchestrator

Owns the capture-cycle phase machine:

    IDLE -> CALIBRATING -> MONITORING <-> LOGGING -> PROCESSING -> READY -> IDLE
                                                                     \-> MONITORING (continuous capture)

All delays (calibration window, motion-end settle delay, READY display time) are
named timers on the shared Scheduler, so they are evaluated against the same event
timestamps as the samples. The orchestrator never touches the algorithms directly;
the engine wires them in through the hook callbacks.
"""

import logging
from typing import Callable, Dict, Optional

from motiontrack.core.config import CalibrationConfig, RecordingConfig
from motiontrack.core.scheduler import Scheduler
from motiontrack.motion.calibrator import CalibrationError, Calibrator
from motiontrack.motion.models import CalibrationResult, RecordingPhase
from .session import Session, SessionRecorder

CALIBRATION_TIMER = "calibration"
MOTION_END_TIMER = "motion_end"
READY_TIMER = "ready"

_EPS = 1e-9

def _noop(*args) -> None:
    pass

class RecordingOrchestrator:
    """
    Capture-cycle state machine.

    Hooks:
        on_phase_change(old, new, timestamp): every phase transition
        on_armed(result): calibration succeeded, detection may start
        on_logging_started(): a burst began; per-burst estimators should reset
        on_rearmed(): READY -> MONITORING under continuous capture
        on_idle(): cycle ended; all per-cycle state should be zeroed
        on_finalized(session): a burst was turned into a session (once per session)
        on_calibration_failed(error): calibration failed after retries
        persister(session): hand a finished session to storage; the result must
            come back through persist_completed()
    """

    def __init__(self,
                 scheduler: Scheduler,
                 calibrator: Calibrator,
                 config: Optional[RecordingConfig] = None,
                 calibration_config: Optional[CalibrationConfig] = None,
                 on_phase_change: Callable = _noop,
                 on_armed: Callable = _noop,
                 on_logging_started: Callable = _noop,
                 on_rearmed: Callable = _noop,
                 on_idle: Callable = _noop,
                 on_calibration_failed: Callable = _noop,
                 on_finalized: Callable = _noop,
                 persister: Optional[Callable[[Session], None]] = None):
        self.scheduler = scheduler
        self.logger = logging.getLogger(__name__)

        self.on_phase_change = on_phase_change
        self.on_armed = on_armed
        self.on_logging_started = on_logging_started
        self.on_rearmed = on_rearmed
        self.on_idle = on_idle
        self.on_calibration_failed = on_calibration_failed
        self.on_finalized = on_finalized
        self.persister = persister

        self.phase = RecordingPhase.IDLE
        self.recorder: Optional[SessionRecorder] = None
        self.calibration: Optional[CalibrationResult] = None
        self.calibration_attempts = 0
        self.pending_sessions: Dict[str, Session] = {}
        self.last_session: Optional[Session] = None
        self.last_error: Optional[str] = None
        self._awaiting_persist: Optional[str] = None
        self._motion_end_started_at: Optional[float] = None

        self.configure(calibrator, config, calibration_config)

    def configure(self,
                  calibrator: Calibrator,
                  config: Optional[RecordingConfig] = None,
                  calibration_config: Optional[CalibrationConfig] = None) -> None:
        """Swap in a new cycle configuration. Only valid while IDLE."""
        if self.phase != RecordingPhase.IDLE:
            raise RuntimeError("Cannot reconfigure an active capture cycle")
        self.calibrator = calibrator
        self.config = config or RecordingConfig()
        self.calibration_config = calibration_config or calibrator.config
        self.motion_end_delay = self.config.motion_end_delay

    @property
    def is_active(self) -> bool:
        return self.phase != RecordingPhase.IDLE

    def _set_phase(self, phase: RecordingPhase, timestamp: float) -> None:
        if phase == self.phase:
            return
        old = self.phase
        self.phase = phase
        self.logger.info(f"Recording phase {old.value} -> {phase.value} at t={timestamp:.3f}")
        self.on_phase_change(old, phase, timestamp)

    # Commands

    def start(self, now: float) -> bool:
        """
        Begin a capture cycle with a calibration window.

        Returns:
            False if a cycle is already active
        """
        if self.phase != RecordingPhase.IDLE:
            self.logger.warning(f"start() ignored, capture already active ({self.phase.value})")
            return False
        self.last_error = None
        self.calibration_attempts = 0
        self._begin_calibration(now)
        return True

    def stop(self, now: float) -> Optional[Session]:
        """
        End the cycle from any phase. Idempotent.

        A LOGGING burst that lasted at least min_capture_duration is finalized and
        handed to the persister; shorter bursts are discarded.

        Returns:
            The finalized session, if any
        """
        if self.phase == RecordingPhase.IDLE:
            return None
        self.scheduler.cancel_all()
        session = None
        if self.phase == RecordingPhase.LOGGING and self.recorder is not None:
            duration = self.recorder.duration(now)
            if duration >= self.config.min_capture_duration - _EPS:
                session = self._finalize(now, to_idle=True)
            else:
                self.logger.info(f"Discarding {duration:.3f}s burst shorter than "
                                 f"{self.config.min_capture_duration:.2f}s")
        self._go_idle(now)
        return session

    def force_stop_active_capture(self, now: float) -> Optional[Session]:
        """Finalize a LOGGING burst immediately, skipping the settle delay."""
        if self.phase != RecordingPhase.LOGGING:
            return None
        self.scheduler.cancel(MOTION_END_TIMER)
        return self._finalize(now)

    def feed_disconnected(self, now: float) -> Optional[Session]:
        """Implicit stop: keep whatever a LOGGING burst captured, then go IDLE."""
        if self.phase == RecordingPhase.IDLE:
            return None
        self.logger.warning(f"Sample feed disconnected during {self.phase.value}")
        self.scheduler.cancel_all()
        session = None
        if self.phase == RecordingPhase.LOGGING and self.recorder is not None and not self.recorder.is_empty:
            session = self._finalize(now, to_idle=True)
        self._go_idle(now)
        return session

    def set_motion_end_delay(self, seconds: float) -> None:
        """
        Change the settle delay. A pending settle timer is moved to the new deadline.

        Raises:
            ValueError: if seconds is negative
        """
        if seconds < 0:
            raise ValueError("Motion end delay must not be negative")
        self.motion_end_delay = float(seconds)
        if self.scheduler.is_pending(MOTION_END_TIMER) and self._motion_end_started_at is not None:
            self.scheduler.schedule(MOTION_END_TIMER, self._motion_end_started_at + self.motion_end_delay,
                                    self._motion_end_expired)
        self.logger.info(f"Motion end delay set to {self.motion_end_delay:.2f}s")

    def retry_persist(self, now: float) -> int:
        """Re-submit every session whose persistence failed. Returns the count."""
        sessions = list(self.pending_sessions.values())
        for session in sessions:
            self.logger.info(f"Retrying persistence of session {session.id}")
            self._submit(session, now)
        return len(sessions)

    # Detector and calibration inputs

    def motion_started(self, now: float) -> None:
        if self.phase == RecordingPhase.MONITORING:
            self.recorder = SessionRecorder(now, self.config.significant_motion_g)
            self._set_phase(RecordingPhase.LOGGING, now)
            self.on_logging_started()
        elif self.phase == RecordingPhase.LOGGING and self.recorder is not None:
            if self.scheduler.cancel(MOTION_END_TIMER):
                self.logger.debug("Motion resumed before settle delay elapsed")
            self._motion_end_started_at = None
            self.recorder.note_motion_event()

    def motion_stopped(self, now: float) -> None:
        if self.phase != RecordingPhase.LOGGING:
            return
        self._motion_end_started_at = now
        self.scheduler.schedule(MOTION_END_TIMER, now + self.motion_end_delay, self._motion_end_expired)

    def record_speed(self, timestamp: float, speed: float, acceleration) -> None:
        if self.phase == RecordingPhase.LOGGING and self.recorder is not None:
            self.recorder.add_speed(timestamp, speed, acceleration)

    def record_spin(self, timestamp: float, rpm: float, axis, angular_velocity) -> None:
        if self.phase == RecordingPhase.LOGGING and self.recorder is not None:
            self.recorder.add_spin(timestamp, rpm, axis, angular_velocity)

    def persist_completed(self, session_id: str, error: Optional[BaseException], now: float) -> None:
        """
        Persistence result for a submitted session.

        Success drops the session from pending_sessions. Failure keeps it there for
        retry_persist(). Either way an awaited PROCESSING phase moves on to READY.
        """
        if error is None:
            self.pending_sessions.pop(session_id, None)
            self.logger.info(f"Session {session_id} persisted")
        else:
            self.last_error = f"Failed to persist session {session_id}: {error}"
            self.logger.warning(self.last_error)

        if self.phase == RecordingPhase.PROCESSING and self._awaiting_persist == session_id:
            self._awaiting_persist = None
            self._set_phase(RecordingPhase.READY, now)
            self.scheduler.schedule(READY_TIMER, now + self.config.ready_display_seconds, self._ready_expired)

    def log_duration(self, now: float) -> float:
        if self.phase == RecordingPhase.LOGGING and self.recorder is not None:
            return self.recorder.duration(now)
        if self.last_session is not None:
            return self.last_session.duration
        return 0.0

    # Timers

    def _begin_calibration(self, now: float) -> None:
        self.calibrator.begin(now)
        self._set_phase(RecordingPhase.CALIBRATING, now)
        self.scheduler.schedule(CALIBRATION_TIMER, self.calibrator.deadline, self._calibration_expired)

    def _calibration_expired(self, deadline: float) -> None:
        try:
            result = self.calibrator.finish()
        except CalibrationError as e:
            if self.calibration_attempts < self.calibration_config.max_retries:
                self.calibration_attempts += 1
                self.logger.warning(f"{e}; retrying calibration "
                                    f"({self.calibration_attempts}/{self.calibration_config.max_retries})")
                self.calibrator.begin(deadline)
                self.scheduler.schedule(CALIBRATION_TIMER, self.calibrator.deadline, self._calibration_expired)
                return
            self.last_error = str(e)
            self.logger.error(f"Calibration failed: {e}")
            self._go_idle(deadline)
            self.on_calibration_failed(e)
            return

        self.calibration = result
        self._set_phase(RecordingPhase.MONITORING, deadline)
        self.on_armed(result)

    def _motion_end_expired(self, deadline: float) -> None:
        self._motion_end_started_at = None
        self._finalize(deadline)

    def _ready_expired(self, deadline: float) -> None:
        if self.config.continuous_capture:
            self._set_phase(RecordingPhase.MONITORING, deadline)
            self.on_rearmed()
        else:
            self._go_idle(deadline)

    # Internals

    def _finalize(self, now: float, to_idle: bool = False) -> Session:
        session = self.recorder.build(now)
        self.recorder = None
        self.last_session = session
        self.pending_sessions[session.id] = session
        self.logger.info(f"Session {session.id} finalized: {session.duration:.2f}s, "
                         f"{session.sample_count} samples, max speed {session.summary.max_speed:.2f} m/s")
        if not to_idle:
            self._set_phase(RecordingPhase.PROCESSING, now)
            self._awaiting_persist = session.id
        self.on_finalized(session)
        self._submit(session, now)
        return session

    def _submit(self, session: Session, now: float) -> None:
        if self.persister is None:
            self.persist_completed(session.id, None, now)
        else:
            self.persister(session)

    def _go_idle(self, now: float) -> None:
        self.scheduler.cancel_all()
        self.recorder = None
        self.calibration = None
        self._awaiting_persist = None
        self._motion_end_started_at = None
        self._set_phase(RecordingPhase.IDLE, now)
        self.on_idle()
