"""
Motion algorithms: calibration, motion detection, velocity integration and spin
estimation. Everything here is synchronous and works in SI units internally.
"""
