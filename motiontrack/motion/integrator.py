"""
Dead-reckoning velocity integrator.

Integrates bias-corrected, low-pass filtered acceleration into a velocity vector
while the detector reports MOVING. Drift from residual bias is bounded two ways:
- a continuous exponential decay `velocity *= exp(-dt / tau)`, which is independent
  of the sample rate (unlike a per-sample multiplicative factor);
- zero-velocity updates (ZUPT) from the detector, which zero the velocity and nudge
  the bias estimate toward the current filtered acceleration.

All math is in SI units. Speed is converted to mph / km/h only by callers at the
display boundary.
"""

import logging
from collections import deque
from math import exp, sqrt
from typing import Deque, Optional, Tuple

import numpy as np

from motiontrack.core.config import IntegratorConfig, IntegratorMode
from .models import MotionState, VelocityState, as_vector, zero_vector
from .units import MPS_TO_MPH

class SpeedSmoother:
    """
    Smoothing for a continuous live speed readout.

    A moving average of recent speeds is blended with the raw value. The blend
    leans harder on the average at high spin rates, where an off-centre sensor
    picks up centripetal acceleration. Speeds under the noise floor read as zero.
    """

    def __init__(self, window: int = 10, base_alpha: float = 0.15, noise_floor_mph: float = 0.5):
        self.history: Deque[float] = deque(maxlen=window)
        self.base_alpha = base_alpha
        self.noise_floor_mps = noise_floor_mph / MPS_TO_MPH

    def alpha_for_spin(self, rpm: float) -> float:
        if rpm > 1000:
            return 0.05
        if rpm > 500:
            return 0.10
        if rpm > 200:
            return 0.15
        return self.base_alpha

    def update(self, raw_speed: float, rpm: float = 0.0) -> float:
        self.history.append(raw_speed)
        average = sum(self.history) / len(self.history)
        alpha = self.alpha_for_spin(rpm)
        smoothed = average * (1.0 - alpha) + raw_speed * alpha
        return smoothed if smoothed > self.noise_floor_mps else 0.0

    def reset(self) -> None:
        self.history.clear()

class VelocityIntegrator:
    """Bias-corrected Euler integrator with exponential decay and ZUPT."""

    def __init__(self, config: Optional[IntegratorConfig] = None):
        self.config = config or IntegratorConfig()
        self.logger = logging.getLogger(__name__)
        self.state = VelocityState()
        self.speed = 0.0
        self.smoother: Optional[SpeedSmoother] = None
        if self.config.mode == IntegratorMode.DISPLAY:
            self.smoother = SpeedSmoother(self.config.smoothing_window,
                                          noise_floor_mph=self.config.noise_floor_mph)

    @property
    def velocity(self) -> np.ndarray:
        return self.state.velocity.copy()

    def _decay(self, dt: float) -> None:
        tau = self.config.velocity_decay_tau
        if tau is not None:
            self.state.velocity *= exp(-dt / tau)

    def _magnitude(self, velocity: np.ndarray) -> float:
        if self.config.horizontal_speed:
            return sqrt(float(velocity[0]) ** 2 + float(velocity[1]) ** 2)
        return float(np.linalg.norm(velocity))

    def on_sample(self,
                  acceleration,
                  dt: float,
                  motion_state: MotionState,
                  zupt: bool = False,
                  rpm: float = 0.0) -> Tuple[np.ndarray, float]:
        """
        Integrate one acceleration sample.

        Args:
            acceleration: (x, y, z) in m/s^2, gravity already removed
            dt: clamped time delta in seconds
            motion_state: current detector state; only MOVING integrates
            zupt: zero-velocity update flagged by the detector for this sample
            rpm: current spin rate, used by the display smoother

        Returns:
            (velocity vector in m/s, speed in m/s)
        """
        state = self.state
        alpha = self.config.low_pass_alpha
        state.filtered_acceleration = state.filtered_acceleration * (1.0 - alpha) + as_vector(acceleration) * alpha

        if zupt:
            bias_alpha = self.config.bias_alpha
            state.acceleration_bias = state.acceleration_bias * (1.0 - bias_alpha) + state.filtered_acceleration * bias_alpha
            state.velocity = zero_vector()
            state.stationary_timer += dt
        else:
            state.stationary_timer = 0.0

        if motion_state == MotionState.MOVING:
            corrected = state.filtered_acceleration - state.acceleration_bias
            state.velocity = state.velocity + corrected * dt
            self._decay(dt)
            raw_speed = self._magnitude(state.velocity)
        else:
            # Not moving: report zero and let any residual velocity die out
            self._decay(dt)
            raw_speed = 0.0

        if self.smoother is not None:
            self.speed = self.smoother.update(raw_speed, rpm)
        else:
            self.speed = raw_speed
        return self.velocity, self.speed

    def reset(self) -> None:
        """Zero velocity, bias and filter state (start of a new cycle)."""
        self.state = VelocityState()
        self.speed = 0.0
        if self.smoother is not None:
            self.smoother.reset()
