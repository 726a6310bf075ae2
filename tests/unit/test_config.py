"""
Unit tests for the configuration models.
"""

import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from motiontrack.core.config import (ApplicationConfig, CalibrationConfig, DetectorConfig,
                                     IntegratorConfig, RecordingConfig, SamplingConfig, ServiceConfig,
                                     get_config)
from motiontrack.motion.units import SpeedUnit

class TestConfig(unittest.TestCase):
    """Test cases for configuration validation and environment overrides."""

    def test_defaults(self):
        config = get_config()
        self.assertIsInstance(config, ApplicationConfig)
        self.assertEqual(config.engine.detector.start_margin, 0.25)
        self.assertEqual(config.engine.recording.motion_end_delay, 1.0)
        self.assertEqual(config.engine.integrator.display_unit, SpeedUnit.MPH)
        self.assertEqual(config.store.file_prefix, "throw_log")

    def test_stop_margin_must_be_below_start_margin(self):
        with self.assertRaises(ValidationError):
            DetectorConfig(start_margin=0.1, stop_margin=0.2)
        with self.assertRaises(ValidationError):
            DetectorConfig(start_margin=0.0, stop_margin=-0.1)

    def test_filter_coefficients(self):
        with self.assertRaises(ValidationError):
            DetectorConfig(low_pass_alpha=0.0)
        with self.assertRaises(ValidationError):
            IntegratorConfig(bias_alpha=1.5)
        self.assertEqual(IntegratorConfig(low_pass_alpha=1.0).low_pass_alpha, 1.0)

    def test_decay_can_be_disabled(self):
        self.assertIsNone(IntegratorConfig(velocity_decay_tau=None).velocity_decay_tau)
        with self.assertRaises(ValidationError):
            IntegratorConfig(velocity_decay_tau=0.0)

    def test_durations(self):
        with self.assertRaises(ValidationError):
            RecordingConfig(motion_end_delay=-1.0)
        with self.assertRaises(ValidationError):
            CalibrationConfig(duration=0.0)
        with self.assertRaises(ValidationError):
            SamplingConfig(min_dt=0.2, max_dt=0.1)

    def test_plausibility_bounds(self):
        sampling = SamplingConfig()
        self.assertEqual(sampling.max_abs_acceleration_g, 32.0)
        self.assertEqual(sampling.max_abs_angular_rate_dps, 4000.0)
        with self.assertRaises(ValidationError):
            SamplingConfig(max_abs_acceleration_g=0.0)
        with self.assertRaises(ValidationError):
            ServiceConfig(max_clock_skew=-1.0)

    def test_environment_override(self):
        """Test a section picks up its prefixed environment variable."""
        with patch.dict(os.environ, {"MOTIONTRACK_DETECTOR_START_MARGIN": "0.4"}):
            self.assertAlmostEqual(DetectorConfig().start_margin, 0.4)
        with patch.dict(os.environ, {"MOTIONTRACK_RECORDING_CONTINUOUS_CAPTURE": "true"}):
            self.assertTrue(RecordingConfig().continuous_capture)

if __name__ == '__main__':
    unittest.main()
