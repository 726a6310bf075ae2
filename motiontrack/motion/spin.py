"""Spin rate and rotation axis estimation from gyroscope samples."""

import logging
from collections import deque
from typing import Deque, Optional, Tuple

import numpy as np

from motiontrack.core.config import SpinConfig
from .models import SpinState, as_vector
from .units import dps_to_rpm

class SpinEstimator:
    """
    Low-pass filters angular rate (deg/s) into a smoothed RPM reading and a
    dominant rotation axis.

    The axis is only re-evaluated once the filtered rotation is significant
    (|x| + |y| + |z| above `axis_significance_dps`) so it does not flicker at low
    rates; it snaps to the signed principal axis with the largest component.
    """

    def __init__(self, config: Optional[SpinConfig] = None):
        self.config = config or SpinConfig()
        self.logger = logging.getLogger(__name__)
        self.state = SpinState()
        self.history: Deque[float] = deque(maxlen=self.config.average_window)
        self.raw_rpm = 0.0

    @property
    def rpm(self) -> float:
        return self.state.rpm

    @property
    def axis(self) -> np.ndarray:
        return self.state.dominant_axis.copy()

    def on_sample(self, angular_velocity) -> Tuple[float, np.ndarray]:
        """
        Process one angular-rate sample in deg/s.

        Returns:
            (smoothed rpm, dominant axis as a signed unit vector or zeros)
        """
        state = self.state
        alpha = self.config.low_pass_alpha
        state.filtered_angular_velocity = (state.filtered_angular_velocity * (1.0 - alpha)
                                           + as_vector(angular_velocity) * alpha)

        self.raw_rpm = dps_to_rpm(float(np.linalg.norm(state.filtered_angular_velocity)))
        self.history.append(self.raw_rpm)
        state.rpm = sum(self.history) / len(self.history)

        magnitudes = np.abs(state.filtered_angular_velocity)
        if float(magnitudes.sum()) > self.config.axis_significance_dps:
            index = int(np.argmax(magnitudes))
            axis = np.zeros(3)
            axis[index] = 1.0 if state.filtered_angular_velocity[index] > 0 else -1.0
            if not np.array_equal(axis, state.dominant_axis):
                self.logger.debug(f"Dominant spin axis -> {describe_axis(axis)}")
            state.dominant_axis = axis

        return state.rpm, self.axis

    def reset(self) -> None:
        self.state = SpinState()
        self.history.clear()
        self.raw_rpm = 0.0

def describe_axis(axis) -> str:
    """Human-readable name for a dominant spin axis."""
    x, y, z = (float(v) for v in axis)
    if abs(x) > 0.5:
        return "Forward" if x > 0 else "Backward"
    if abs(y) > 0.5:
        return "Right" if y > 0 else "Left"
    if abs(z) > 0.5:
        return "Clockwise" if z > 0 else "Counter-clockwise"
    return "None"
