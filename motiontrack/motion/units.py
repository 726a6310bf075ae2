"""
Unit constants and boundary conversions.

All integration happens in SI units. Sensor values are converted once at
ingestion (g -> m/s^2) and speeds are converted to display units only when they
leave the engine.
"""

from enum import Enum

STANDARD_GRAVITY = 9.80665      # m/s^2 per g
MPS_TO_MPH = 2.23694
MPS_TO_KMH = 3.6
DPS_TO_RPM = 1.0 / 6.0          # deg/s -> rev/min (60 / 360)

class SpeedUnit(str, Enum):
    MPS = "m/s"
    MPH = "mph"
    KMH = "km/h"

_SPEED_FACTORS = {
    SpeedUnit.MPS: 1.0,
    SpeedUnit.MPH: MPS_TO_MPH,
    SpeedUnit.KMH: MPS_TO_KMH,
}

def g_to_mps2(value):
    """Convert acceleration in g to m/s^2. Works on floats and numpy arrays."""
    return value * STANDARD_GRAVITY

def convert_speed(speed_mps: float, unit: SpeedUnit) -> float:
    """Convert a speed in m/s to the requested display unit."""
    return speed_mps * _SPEED_FACTORS[SpeedUnit(unit)]

def dps_to_rpm(value):
    return value * DPS_TO_RPM
