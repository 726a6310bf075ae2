"""
Unit tests for the Calibrator and the engine clock Scheduler.
"""

import unittest

from motiontrack.core.config import CalibrationConfig
from motiontrack.core.scheduler import Scheduler
from motiontrack.motion.calibrator import CalibrationError, Calibrator
from motiontrack.motion.models import Sample, TimestampCursor
from motiontrack.motion.units import STANDARD_GRAVITY

class TestCalibrator(unittest.TestCase):
    """Test cases for the Calibrator class."""

    def test_stationary_gravity_feed(self):
        """Test calibration of a device at rest with gravity on z."""
        samples = [Sample.of(i / 100.0, 0.0, 0.0, 1.0) for i in range(300)]
        result = Calibrator().calibrate(samples)

        self.assertAlmostEqual(result.gravity[2], STANDARD_GRAVITY, places=9)
        self.assertAlmostEqual(result.gravity[0], 0.0)
        self.assertAlmostEqual(result.baseline_energy, 0.0, places=9)
        # Only the first 2 s (inclusive) are used
        self.assertEqual(result.sample_count, 201)

    def test_baseline_measures_noise(self):
        """Test that horizontal noise shows up in the baseline energy."""
        samples = [Sample.of(i / 100.0, 0.02 if i % 2 else -0.02, 0.0, 1.0) for i in range(200)]
        result = Calibrator().calibrate(samples)
        self.assertGreater(result.baseline_energy, 0.0)
        self.assertLess(result.baseline_energy, 0.02 * STANDARD_GRAVITY)

    def test_insufficient_samples(self):
        """Test that too few samples raise CalibrationError."""
        calibrator = Calibrator(CalibrationConfig(min_samples=10))
        calibrator.begin(0.0)
        for _ in range(5):
            calibrator.add_sample((0.0, 0.0, STANDARD_GRAVITY))
        with self.assertRaises(CalibrationError) as ctx:
            calibrator.finish()
        self.assertIn("Insufficient samples", str(ctx.exception))

    def test_non_finite_samples_are_skipped(self):
        """Test that NaN samples do not poison the gravity estimate."""
        samples = [Sample.of(i / 100.0, 0.0, 0.0, 1.0) for i in range(100)]
        samples.insert(10, Sample.of(0.095, float("nan"), 0.0, 1.0))
        result = Calibrator().calibrate(samples)
        self.assertAlmostEqual(result.gravity[2], STANDARD_GRAVITY, places=9)

    def test_deadline(self):
        """Test the window deadline follows the configured duration."""
        calibrator = Calibrator(CalibrationConfig(duration=1.5))
        self.assertIsNone(calibrator.deadline)
        calibrator.begin(10.0)
        self.assertAlmostEqual(calibrator.deadline, 11.5)

class TestTimestampCursor(unittest.TestCase):
    """Test cases for the TimestampCursor class."""

    def test_first_sample_has_no_delta(self):
        cursor = TimestampCursor()
        self.assertIsNone(cursor.advance(1.0))
        self.assertEqual(cursor.dropped, 0)

    def test_delta_is_clamped(self):
        cursor = TimestampCursor(min_dt=0.002, max_dt=0.1, max_gap=1.0)
        cursor.advance(0.0)
        self.assertAlmostEqual(cursor.advance(0.001), 0.002)
        self.assertAlmostEqual(cursor.advance(0.5), 0.1)

    def test_non_monotonic_sample_keeps_cursor(self):
        cursor = TimestampCursor()
        cursor.advance(1.0)
        self.assertIsNone(cursor.advance(0.5))
        self.assertIsNone(cursor.advance(1.0))
        self.assertEqual(cursor.last_timestamp, 1.0)
        self.assertEqual(cursor.dropped, 2)
        self.assertAlmostEqual(cursor.advance(1.01), 0.01)

    def test_gap_advances_cursor(self):
        cursor = TimestampCursor(max_gap=1.0)
        cursor.advance(0.0)
        self.assertIsNone(cursor.advance(5.0))
        self.assertEqual(cursor.last_timestamp, 5.0)
        self.assertAlmostEqual(cursor.advance(5.01), 0.01)

class TestScheduler(unittest.TestCase):
    """Test cases for the Scheduler class."""

    def setUp(self):
        self.scheduler = Scheduler()
        self.fired = []

    def _callback(self, name):
        return lambda deadline: self.fired.append((name, deadline))

    def test_fires_due_timers_in_order(self):
        """Test that due timers fire earliest first with their own deadline."""
        self.scheduler.schedule("b", 2.0, self._callback("b"))
        self.scheduler.schedule("a", 1.0, self._callback("a"))
        self.scheduler.schedule("c", 5.0, self._callback("c"))

        self.assertEqual(self.scheduler.advance(3.0), 2)
        self.assertEqual(self.fired, [("a", 1.0), ("b", 2.0)])
        self.assertTrue(self.scheduler.is_pending("c"))

    def test_cancel_is_idempotent(self):
        """Test cancelling twice."""
        self.scheduler.schedule("a", 1.0, self._callback("a"))
        self.assertTrue(self.scheduler.cancel("a"))
        self.assertFalse(self.scheduler.cancel("a"))
        self.assertEqual(self.scheduler.advance(10.0), 0)

    def test_reschedule_replaces(self):
        """Test that scheduling an existing name replaces its deadline."""
        self.scheduler.schedule("a", 1.0, self._callback("a"))
        self.scheduler.schedule("a", 3.0, self._callback("a"))
        self.assertEqual(self.scheduler.deadline("a"), 3.0)
        self.scheduler.advance(2.0)
        self.assertEqual(self.fired, [])

    def test_chained_timer_fires_in_same_advance(self):
        """Test a callback scheduling an already-due timer."""
        def first(deadline):
            self.fired.append(("first", deadline))
            self.scheduler.schedule("second", deadline + 0.5, self._callback("second"))

        self.scheduler.schedule("first", 1.0, first)
        self.assertEqual(self.scheduler.advance(2.0), 2)
        self.assertEqual(self.fired, [("first", 1.0), ("second", 1.5)])

if __name__ == '__main__':
    unittest.main()
