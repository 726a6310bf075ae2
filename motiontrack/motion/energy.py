"""Sliding RMS energy window."""

from collections import deque
from math import sqrt
from typing import Deque

def window_capacity(rate_hz: float, window_seconds: float,
                    min_samples: int = 5, max_samples: int = 200) -> int:
    """Number of samples that approximates `window_seconds` at `rate_hz`."""
    return max(min_samples, min(max_samples, int(rate_hz * window_seconds)))

class EnergyWindow:
    """
    Bounded ring buffer of squared magnitudes with a running sum of squares.

    The sum is maintained incrementally on push/evict rather than recomputed.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("EnergyWindow capacity must be at least 1")
        self.buffer: Deque[float] = deque()
        self.capacity = capacity
        self.sum_of_squares = 0.0

    def __len__(self) -> int:
        return len(self.buffer)

    def push(self, magnitude: float) -> float:
        """Add a magnitude and return the windowed RMS."""
        square = magnitude * magnitude
        self.buffer.append(square)
        self.sum_of_squares += square
        while len(self.buffer) > self.capacity:
            self.sum_of_squares -= self.buffer.popleft()
        # Float subtraction can leave a tiny negative residue
        if self.sum_of_squares < 0.0:
            self.sum_of_squares = 0.0
        return self.rms

    @property
    def rms(self) -> float:
        if not self.buffer:
            return 0.0
        return sqrt(self.sum_of_squares / len(self.buffer))

    def resize(self, capacity: int) -> None:
        """Change the capacity, evicting the oldest entries if needed."""
        if capacity < 1:
            raise ValueError("EnergyWindow capacity must be at least 1")
        self.capacity = capacity
        while len(self.buffer) > capacity:
            self.sum_of_squares -= self.buffer.popleft()
        if self.sum_of_squares < 0.0:
            self.sum_of_squares = 0.0

    def clear(self) -> None:
        self.buffer.clear()
        self.sum_of_squares = 0.0


class HorizontalEnergyMeter:
    """
    Motion-energy metric shared by calibration and detection: low-pass filter the
    acceleration, take the horizontal (x, y) magnitude, and report its windowed RMS.

    The vertical axis is left out so that gravity residue does not read as motion.
    """

    def __init__(self, capacity: int, alpha: float = 0.1):
        self.alpha = alpha
        self.window = EnergyWindow(capacity)
        self.filtered_x = 0.0
        self.filtered_y = 0.0
        self.rms = 0.0

    def update(self, acceleration) -> float:
        """Feed one acceleration vector (m/s^2) and return the new RMS."""
        a = self.alpha
        self.filtered_x = self.filtered_x * (1.0 - a) + float(acceleration[0]) * a
        self.filtered_y = self.filtered_y * (1.0 - a) + float(acceleration[1]) * a
        magnitude = sqrt(self.filtered_x * self.filtered_x + self.filtered_y * self.filtered_y)
        self.rms = self.window.push(magnitude)
        return self.rms

    def reset(self) -> None:
        self.window.clear()
        self.filtered_x = 0.0
        self.filtered_y = 0.0
        self.rms = 0.0
