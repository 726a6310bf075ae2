"""
Unit tests for the VelocityIntegrator, SpeedSmoother and SpinEstimator.
"""

import unittest
from math import exp

import numpy as np

from motiontrack.core.config import IntegratorConfig, IntegratorMode, SpinConfig
from motiontrack.motion.integrator import SpeedSmoother, VelocityIntegrator
from motiontrack.motion.models import MotionState
from motiontrack.motion.spin import SpinEstimator, describe_axis
from motiontrack.motion.units import MPS_TO_MPH

DT = 0.01

class TestVelocityIntegrator(unittest.TestCase):
    """Test cases for the VelocityIntegrator class."""

    def _integrate(self, integrator, acceleration, steps, state=MotionState.MOVING, zupt=False):
        speed = 0.0
        for _ in range(steps):
            _, speed = integrator.on_sample(acceleration, DT, state, zupt)
        return speed

    def test_step_response_without_decay(self):
        """Test constant acceleration integrates to a*t when decay is disabled."""
        integrator = VelocityIntegrator(IntegratorConfig(low_pass_alpha=1.0, velocity_decay_tau=None))
        speed = self._integrate(integrator, (2.0, 0.0, 0.0), 50)
        self.assertAlmostEqual(speed, 2.0 * 0.5, places=9)

    def test_step_response_matches_decayed_closed_form(self):
        """Test the decayed integration against its closed-form solution."""
        a, tau, steps = 2.0, 0.5, 50
        integrator = VelocityIntegrator(IntegratorConfig(low_pass_alpha=1.0, velocity_decay_tau=tau))
        speed = self._integrate(integrator, (a, 0.0, 0.0), steps)

        r = exp(-DT / tau)
        expected = a * DT * r * (1.0 - r ** steps) / (1.0 - r)
        self.assertAlmostEqual(speed, expected, places=9)
        self.assertLess(speed, a * steps * DT)

    def test_speed_is_horizontal_by_default(self):
        """Test that vertical acceleration does not contribute to speed."""
        integrator = VelocityIntegrator(IntegratorConfig(low_pass_alpha=1.0, velocity_decay_tau=None))
        speed = self._integrate(integrator, (0.0, 0.0, 5.0), 50)
        self.assertEqual(speed, 0.0)
        self.assertGreater(integrator.velocity[2], 0.0)

        integrator = VelocityIntegrator(IntegratorConfig(low_pass_alpha=1.0, velocity_decay_tau=None,
                                                         horizontal_speed=False))
        speed = self._integrate(integrator, (0.0, 0.0, 5.0), 50)
        self.assertAlmostEqual(speed, 2.5, places=9)

    def test_not_moving_reports_zero_and_decays(self):
        """Test that speed is zero outside MOVING and velocity decays toward zero."""
        integrator = VelocityIntegrator()
        self._integrate(integrator, (2.0, 0.0, 0.0), 50)
        before = np.linalg.norm(integrator.velocity)
        speed = self._integrate(integrator, (0.0, 0.0, 0.0), 100, state=MotionState.MONITORING)
        self.assertEqual(speed, 0.0)
        self.assertLess(np.linalg.norm(integrator.velocity), before * 0.2)

    def test_zupt_forces_zero_velocity(self):
        """Test that a zero-velocity update zeroes velocity regardless of history."""
        integrator = VelocityIntegrator(IntegratorConfig(velocity_decay_tau=None))
        self._integrate(integrator, (3.0, -1.0, 0.0), 200)
        self.assertGreater(np.linalg.norm(integrator.velocity), 1.0)

        integrator.on_sample((0.01, 0.0, 0.0), DT, MotionState.MONITORING, zupt=True)
        np.testing.assert_array_equal(integrator.velocity, np.zeros(3))

    def test_zupt_updates_bias(self):
        """Test that the bias estimate moves toward the filtered acceleration at rest."""
        integrator = VelocityIntegrator(IntegratorConfig(low_pass_alpha=1.0))
        for _ in range(200):
            integrator.on_sample((0.2, 0.0, 0.0), DT, MotionState.MONITORING, zupt=True)
        self.assertAlmostEqual(integrator.state.acceleration_bias[0], 0.2, places=4)

        # A resting bias no longer integrates into speed
        _, speed = integrator.on_sample((0.2, 0.0, 0.0), DT, MotionState.MOVING)
        self.assertLess(speed, 1e-5)

    def test_reset(self):
        """Test reset zeroes the velocity state."""
        integrator = VelocityIntegrator()
        self._integrate(integrator, (2.0, 0.0, 0.0), 20)
        integrator.reset()
        np.testing.assert_array_equal(integrator.velocity, np.zeros(3))
        np.testing.assert_array_equal(integrator.state.acceleration_bias, np.zeros(3))
        self.assertEqual(integrator.speed, 0.0)

    def test_display_mode_applies_noise_floor(self):
        """Test the display smoother suppresses speeds under the noise floor."""
        integrator = VelocityIntegrator(IntegratorConfig(mode=IntegratorMode.DISPLAY))
        self.assertIsNotNone(integrator.smoother)
        speed = self._integrate(integrator, (0.05, 0.0, 0.0), 10)
        self.assertEqual(speed, 0.0)

class TestSpeedSmoother(unittest.TestCase):
    """Test cases for the SpeedSmoother class."""

    def test_alpha_depends_on_spin(self):
        """Test the spin-adaptive smoothing factor."""
        smoother = SpeedSmoother()
        self.assertEqual(smoother.alpha_for_spin(1500), 0.05)
        self.assertEqual(smoother.alpha_for_spin(600), 0.10)
        self.assertEqual(smoother.alpha_for_spin(300), 0.15)
        self.assertEqual(smoother.alpha_for_spin(0), 0.15)

    def test_converges_on_constant_speed(self):
        """Test a constant input is reproduced once the window is full."""
        smoother = SpeedSmoother(window=10)
        for _ in range(20):
            value = smoother.update(5.0)
        self.assertAlmostEqual(value, 5.0)

    def test_noise_floor(self):
        """Test speeds under 0.5 mph read as zero."""
        smoother = SpeedSmoother(noise_floor_mph=0.5)
        self.assertEqual(smoother.update(0.4 / MPS_TO_MPH), 0.0)

class TestSpinEstimator(unittest.TestCase):
    """Test cases for the SpinEstimator class."""

    def test_constant_rotation_rpm(self):
        """Test 600 deg/s about z converges to 100 RPM clockwise."""
        spin = SpinEstimator()
        for _ in range(200):
            rpm, axis = spin.on_sample((0.0, 0.0, 600.0))
        self.assertAlmostEqual(rpm, 100.0, places=3)
        np.testing.assert_array_equal(axis, np.array([0.0, 0.0, 1.0]))
        self.assertEqual(describe_axis(axis), "Clockwise")

    def test_negative_axis(self):
        """Test the signed axis for rotation in the negative direction."""
        spin = SpinEstimator()
        for _ in range(50):
            _, axis = spin.on_sample((-300.0, 20.0, 0.0))
        np.testing.assert_array_equal(axis, np.array([-1.0, 0.0, 0.0]))
        self.assertEqual(describe_axis(axis), "Backward")

    def test_axis_ignored_below_significance(self):
        """Test that slow rotation does not set a dominant axis."""
        spin = SpinEstimator(SpinConfig(axis_significance_dps=50.0))
        for _ in range(100):
            _, axis = spin.on_sample((10.0, 10.0, 10.0))
        np.testing.assert_array_equal(axis, np.zeros(3))
        self.assertEqual(describe_axis(axis), "None")

    def test_describe_axis_labels(self):
        """Test every axis label."""
        self.assertEqual(describe_axis((1, 0, 0)), "Forward")
        self.assertEqual(describe_axis((0, 1, 0)), "Right")
        self.assertEqual(describe_axis((0, -1, 0)), "Left")
        self.assertEqual(describe_axis((0, 0, -1)), "Counter-clockwise")

    def test_reset(self):
        """Test reset clears the spin state."""
        spin = SpinEstimator()
        for _ in range(20):
            spin.on_sample((0.0, 0.0, 600.0))
        spin.reset()
        self.assertEqual(spin.rpm, 0.0)
        np.testing.assert_array_equal(spin.axis, np.zeros(3))

if __name__ == '__main__':
    unittest.main()
