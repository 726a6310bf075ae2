"""
Data types shared by the motion algorithms.

Samples are transient and immutable. The state records (VelocityState, SpinState)
are owned by exactly one component each and live for one capture cycle.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

def zero_vector() -> np.ndarray:
    return np.zeros(3, dtype=np.float64)

def as_vector(values: Sequence[float]) -> np.ndarray:
    """Convert an (x, y, z) sequence to a float64 array of shape (3,)."""
    vector = np.asarray(values, dtype=np.float64)
    if vector.shape != (3,):
        raise ValueError(f"Expected a 3-vector, got shape {vector.shape}")
    return vector

@dataclass(frozen=True)
class Sample:
    """
    One timestamped reading from the sample feed.

    timestamp is in seconds. All inputs of one engine share one clock; the
    service rebases feed timestamps onto its own clock before queueing them.
    vector is (x, y, z) in sensor units: g for acceleration, deg/s for angular rate.
    """
    timestamp: float
    vector: Tuple[float, float, float]

    @classmethod
    def of(cls, timestamp: float, x: float, y: float, z: float) -> "Sample":
        return cls(float(timestamp), (float(x), float(y), float(z)))

    def is_finite(self) -> bool:
        return bool(np.isfinite(self.timestamp)) and bool(np.all(np.isfinite(self.vector)))

    def within(self, limit: float) -> bool:
        """True if every component is finite and no larger than `limit` in magnitude."""
        return self.is_finite() and bool(np.all(np.abs(self.vector) <= limit))

class MotionState(str, Enum):
    """Coarse motion state of the engine."""
    IDLE = "idle"
    CALIBRATING = "calibrating"
    MONITORING = "monitoring"
    MOVING = "moving"

class RecordingPhase(str, Enum):
    """Phase of the capture cycle. Exactly one is active at a time."""
    IDLE = "idle"
    CALIBRATING = "calibrating"
    MONITORING = "monitoring"
    LOGGING = "logging"
    PROCESSING = "processing"
    READY = "ready"

@dataclass
class VelocityState:
    """Dead-reckoning state. Owned by VelocityIntegrator."""
    velocity: np.ndarray = field(default_factory=zero_vector)
    acceleration_bias: np.ndarray = field(default_factory=zero_vector)
    stationary_timer: float = 0.0
    filtered_acceleration: np.ndarray = field(default_factory=zero_vector)

@dataclass
class SpinState:
    """Rotation state. Owned by SpinEstimator."""
    filtered_angular_velocity: np.ndarray = field(default_factory=zero_vector)
    rpm: float = 0.0
    dominant_axis: np.ndarray = field(default_factory=zero_vector)

@dataclass(frozen=True)
class CalibrationResult:
    """Outcome of a stationary warm-up window."""
    baseline_energy: float      # terminal horizontal RMS, m/s^2
    gravity: Tuple[float, float, float]  # mean acceleration at rest, m/s^2
    sample_count: int
    duration: float

class TimestampCursor:
    """
    Tracks the last accepted timestamp of one channel and turns timestamps into
    clamped time deltas.

    advance() returns None when the sample must not be integrated: either it is
    the first sample of the channel, or its delta is not usable. Deltas <= 0 leave
    the cursor where it is; gaps larger than max_gap move the cursor forward so
    the next sample starts from a fresh reference.
    """

    def __init__(self, min_dt: float = 0.002, max_dt: float = 0.1, max_gap: float = 1.0):
        self.min_dt = min_dt
        self.max_dt = max_dt
        self.max_gap = max_gap
        self.last_timestamp: Optional[float] = None
        self.dropped = 0

    def advance(self, timestamp: float) -> Optional[float]:
        if self.last_timestamp is None:
            self.last_timestamp = timestamp
            return None

        dt = timestamp - self.last_timestamp
        if dt <= 0.0:
            self.dropped += 1
            logger.debug(f"Dropping non-monotonic sample (dt={dt:.6f}s)")
            return None
        self.last_timestamp = timestamp
        if dt > self.max_gap:
            self.dropped += 1
            logger.debug(f"Dropping sample after {dt:.3f}s gap")
            return None
        return min(self.max_dt, max(self.min_dt, dt))

    def skip(self, timestamp: float) -> None:
        """Advance past a sample that was rejected for its content."""
        self.dropped += 1
        if np.isfinite(timestamp) and (self.last_timestamp is None or timestamp > self.last_timestamp):
            self.last_timestamp = timestamp

    def reset(self) -> None:
        self.last_timestamp = None
