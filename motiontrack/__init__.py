"""
motiontrack - online motion detection and speed/spin estimation for a wearable
inertial sensor.

This package contains the engine that turns a noisy stream of acceleration and
angular-rate samples into:
- a debounced motion state (monitoring / moving) with hysteresis
- a dead-reckoned speed estimate with bias correction and zero-velocity updates
- a filtered spin rate (RPM) and dominant rotation axis
- recorded throw sessions, persisted with a stable schema

Bluetooth transport and raw sample decoding belong to the sensor SDK; the engine
consumes any async iterable of samples.
"""

__version__ = "1.0.0"
