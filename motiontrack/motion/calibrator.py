"""
Stationary warm-up calibration.

Before motion detection is armed the device is assumed to be at rest for a short
window (2 s by default). During that window the calibrator measures:
- the mean acceleration vector, which the engine subtracts from every later sample
  so a raw accelerometer at rest reads zero (for a gravity-removed feed this mean
  is ~0 and the subtraction is harmless);
- the baseline motion energy of the offset-corrected samples, using exactly the
  metric the detector uses at runtime, keeping its terminal value.
"""

import logging
from typing import Iterable, List, Optional

import numpy as np

from motiontrack.core.config import CalibrationConfig, DetectorConfig
from .energy import HorizontalEnergyMeter, window_capacity
from .models import CalibrationResult, Sample, as_vector
from .units import g_to_mps2

class CalibrationError(RuntimeError):
    """Raised when the warm-up window did not receive enough samples."""

class Calibrator:
    """Estimates the stationary baseline energy over a fixed warm-up window."""

    def __init__(self,
                 config: Optional[CalibrationConfig] = None,
                 detector_config: Optional[DetectorConfig] = None,
                 sample_rate_hz: float = 100.0):
        self.config = config or CalibrationConfig()
        self.detector_config = detector_config or DetectorConfig()
        self.sample_rate_hz = sample_rate_hz
        self.logger = logging.getLogger(__name__)

        self.started_at: Optional[float] = None
        self._vectors: List[np.ndarray] = []

    @property
    def sample_count(self) -> int:
        return len(self._vectors)

    @property
    def deadline(self) -> Optional[float]:
        if self.started_at is None:
            return None
        return self.started_at + self.config.duration

    def begin(self, now: float) -> None:
        """Open a fresh warm-up window starting at `now`."""
        self.started_at = now
        self._vectors = []
        self.logger.info(f"Calibration window opened ({self.config.duration:.1f}s)")

    def add_sample(self, acceleration_mps2) -> None:
        """Accumulate one acceleration vector (m/s^2, offset not yet removed)."""
        self._vectors.append(as_vector(acceleration_mps2))

    def finish(self) -> CalibrationResult:
        """
        Close the window and return the measured baseline.

        Raises:
            CalibrationError: if fewer than `min_samples` samples arrived
        """
        if self.sample_count < self.config.min_samples:
            raise CalibrationError(
                f"Insufficient samples for calibration: {self.sample_count} < {self.config.min_samples}"
            )

        stacked = np.vstack(self._vectors)
        gravity = stacked.mean(axis=0)

        capacity = window_capacity(self.sample_rate_hz, self.detector_config.rms_window_seconds,
                                   self.detector_config.min_window_samples,
                                   self.detector_config.max_window_samples)
        meter = HorizontalEnergyMeter(capacity, self.detector_config.low_pass_alpha)
        for vector in stacked - gravity:
            meter.update(vector)

        result = CalibrationResult(
            baseline_energy=meter.rms,
            gravity=tuple(float(v) for v in gravity),
            sample_count=self.sample_count,
            duration=self.config.duration,
        )
        self.logger.info(f"Calibration complete: baseline={result.baseline_energy:.4f} m/s^2 "
                         f"from {result.sample_count} samples")
        return result

    def calibrate(self, samples: Iterable[Sample]) -> CalibrationResult:
        """
        Run a whole calibration over a batch of acceleration samples (in g).

        Only samples inside the first `duration` seconds are used.
        """
        for sample in samples:
            if not sample.is_finite():
                continue
            if self.started_at is None:
                self.begin(sample.timestamp)
            if sample.timestamp - self.started_at > self.config.duration:
                break
            self.add_sample(g_to_mps2(np.asarray(sample.vector, dtype=np.float64)))
        return self.finish()
