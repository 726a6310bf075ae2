"""
Motion State Detector

Turns a stream of acceleration samples into a debounced MONITORING / MOVING state.

Core Concepts:
- Energy: the RMS of the horizontal magnitude of the low-pass filtered acceleration
  over a ~250 ms sliding window (see `HorizontalEnergyMeter`). The vertical axis is
  excluded so gravity residue does not read as motion.
- Baseline: the noise floor. Seeded by calibration (or by the first sample) and,
  while not moving, slowly pulled toward the current RMS so it can follow slow drift
  (temperature, a loosening mount) without following real motion.
- Hysteresis: motion starts above `baseline + start_margin` but only ends below
  `baseline + stop_margin`, with stop_margin < start_margin.
- Debounce: the start (or stop) condition must hold continuously for
  `start_min_duration` (or `stop_min_duration`); the accumulated time resets as soon
  as the condition breaks.
- Zero-velocity update (ZUPT): independent of the state machine, once the RMS has
  stayed below the stop threshold for `stationary_time_threshold` every further
  quiet sample is flagged so the integrator can zero its velocity and re-estimate
  its bias, even before the coarse state reports a stop.
"""

import logging
from enum import Enum
from typing import Optional

from motiontrack.core.config import DetectorConfig
from .energy import HorizontalEnergyMeter, window_capacity
from .models import MotionState
from .units import STANDARD_GRAVITY

# Absorbs float error when summing per-sample deltas against a duration
_EPS = 1e-9

class ThresholdPreset(Enum):
    """Start-margin sensitivity presets, in m/s^2."""
    SENSITIVE = 0.02 * STANDARD_GRAVITY
    MEDIUM = 0.05 * STANDARD_GRAVITY
    RELAXED = 0.10 * STANDARD_GRAVITY

class MotionStateDetector:
    """
    Windowed RMS energy detector with hysteresis, debounce and a ZUPT timer.

    Only ever reports MONITORING or MOVING; the IDLE and CALIBRATING states belong
    to the recording orchestrator.
    """

    def __init__(self, config: Optional[DetectorConfig] = None, sample_rate_hz: float = 100.0):
        self.config = config or DetectorConfig()
        self.logger = logging.getLogger(__name__)

        self.start_margin = self.config.start_margin
        self.stop_margin = self.config.stop_margin
        self.sample_rate_hz = sample_rate_hz

        self.meter = HorizontalEnergyMeter(self._capacity_for(sample_rate_hz), self.config.low_pass_alpha)
        self._dt_estimate = 1.0 / sample_rate_hz

        self.state = MotionState.MONITORING
        self.rms = 0.0
        self.baseline_rms = 0.0
        self.baseline_initialized = False
        self.above_start_time = 0.0
        self.below_stop_time = 0.0
        self.stationary_timer = 0.0
        self.zupt = False
        self.transition_count = 0

    def _capacity_for(self, rate_hz: float) -> int:
        return window_capacity(rate_hz, self.config.rms_window_seconds,
                               self.config.min_window_samples, self.config.max_window_samples)

    @property
    def start_threshold(self) -> float:
        return self.baseline_rms + self.start_margin

    @property
    def stop_threshold(self) -> float:
        return self.baseline_rms + self.stop_margin

    @property
    def is_moving(self) -> bool:
        return self.state == MotionState.MOVING

    def seed_baseline(self, baseline_rms: float) -> None:
        """Start from a calibrated noise floor instead of the first sample."""
        self.baseline_rms = max(0.0, float(baseline_rms))
        self.baseline_initialized = True

    def set_start_margin(self, margin: float) -> None:
        """
        Change the start margin live, keeping the stop/start ratio.

        Raises:
            ValueError: if margin is not positive
        """
        if margin <= 0:
            raise ValueError("Motion threshold must be positive")
        ratio = self.stop_margin / self.start_margin
        self.start_margin = float(margin)
        self.stop_margin = self.start_margin * ratio
        self.logger.info(f"Motion start margin set to {self.start_margin:.3f} m/s^2 "
                         f"(stop margin {self.stop_margin:.3f})")

    def apply_preset(self, preset: ThresholdPreset) -> None:
        self.set_start_margin(preset.value)

    def on_sample(self, acceleration, dt: Optional[float]) -> MotionState:
        """
        Process one acceleration sample.

        Args:
            acceleration: (x, y, z) in m/s^2, gravity already removed
            dt: clamped time since the previous sample, or None for the first one

        Returns:
            MotionState.MONITORING or MotionState.MOVING
        """
        rms = self.meter.update(acceleration)
        if dt is None:
            # No prior window: the first sample only establishes the baseline
            self.rms = rms
            if not self.baseline_initialized:
                self.seed_baseline(rms)
            self.zupt = False
            return self.state

        self._track_rate(dt)
        return self.update_from_rms(rms, dt)

    def update_from_rms(self, rms: float, dt: float) -> MotionState:
        """Advance the hysteresis/debounce state machine with one RMS value."""
        self.rms = rms
        if not self.baseline_initialized:
            self.seed_baseline(rms)
        if self.state != MotionState.MOVING:
            alpha = self.config.baseline_alpha
            self.baseline_rms = self.baseline_rms * (1.0 - alpha) + rms * alpha

        start_threshold = self.start_threshold
        stop_threshold = self.stop_threshold

        if rms > start_threshold:
            self.above_start_time += dt
            self.below_stop_time = 0.0
            if (self.state != MotionState.MOVING and
                    self.above_start_time >= self.config.start_min_duration - _EPS):
                self._transition(MotionState.MOVING)
                self.stationary_timer = 0.0
        elif rms < stop_threshold:
            self.below_stop_time += dt
            self.above_start_time = 0.0
            if (self.state == MotionState.MOVING and
                    self.below_stop_time >= self.config.stop_min_duration - _EPS):
                self._transition(MotionState.MONITORING)
        else:
            # Between thresholds: neither condition holds continuously
            self.above_start_time = 0.0
            self.below_stop_time = 0.0

        if rms < stop_threshold:
            self.stationary_timer += dt
            self.zupt = self.stationary_timer >= self.config.stationary_time_threshold - _EPS
        else:
            self.stationary_timer = 0.0
            self.zupt = False

        return self.state

    def _transition(self, new_state: MotionState) -> None:
        self.logger.info(f"Motion state {self.state.value} -> {new_state.value} "
                         f"(rms={self.rms:.3f}, baseline={self.baseline_rms:.3f})")
        self.state = new_state
        self.transition_count += 1

    def _track_rate(self, dt: float) -> None:
        # Keep the window ~rms_window_seconds long when the feed changes rate
        self._dt_estimate = self._dt_estimate * 0.95 + dt * 0.05
        desired = self._capacity_for(1.0 / self._dt_estimate)
        capacity = self.meter.window.capacity
        if abs(desired - capacity) > max(1, capacity // 5):
            self.logger.debug(f"Resizing RMS window {capacity} -> {desired} samples")
            self.meter.window.resize(desired)

    def reset(self) -> None:
        """Return to a fresh MONITORING state with no baseline."""
        self.meter.reset()
        self._dt_estimate = 1.0 / self.sample_rate_hz
        self.meter.window.resize(self._capacity_for(self.sample_rate_hz))
        self.state = MotionState.MONITORING
        self.rms = 0.0
        self.baseline_rms = 0.0
        self.baseline_initialized = False
        self.above_start_time = 0.0
        self.below_stop_time = 0.0
        self.stationary_timer = 0.0
        self.zupt = False
        self.transition_count = 0
