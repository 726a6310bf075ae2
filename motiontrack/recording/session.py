"""
Recorded motion bursts.

A Session is the durable result of one LOGGING phase: the speed and spin series
captured while moving plus summary statistics. Sessions are pydantic models so they
serialize to a stable JSON schema (schema_version 1).
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import numpy as np
from pydantic import BaseModel, Field

from motiontrack.motion.spin import describe_axis
from motiontrack.motion.units import MPS_TO_MPH, STANDARD_GRAVITY

SCHEMA_VERSION = 1

class SpeedPoint(BaseModel):
    t: float          # seconds since session start
    speed: float      # m/s

class SpinPoint(BaseModel):
    t: float
    rpm: float
    axis_x: float = 0.0
    axis_y: float = 0.0
    axis_z: float = 0.0

class SessionSummary(BaseModel):
    """Statistics computed once when a burst is finalized."""
    max_speed: float = 0.0
    avg_speed: float = 0.0
    max_rpm: float = 0.0
    avg_rpm: float = 0.0
    dominant_axis: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    dominant_axis_label: str = "None"
    motion_event_count: int = 0
    significant_motion_count: int = 0
    peak_acceleration: float = 0.0        # m/s^2
    peak_angular_velocity: float = 0.0    # deg/s
    max_speed_mph: float = 0.0
    avg_speed_mph: float = 0.0

class Session(BaseModel):
    id: str
    schema_version: int = SCHEMA_VERSION
    start_time: datetime
    end_time: datetime
    duration: float
    sample_count: int = 0
    spin_sample_count: int = 0
    speed_series: List[SpeedPoint] = Field(default_factory=list)
    spin_series: List[SpinPoint] = Field(default_factory=list)
    summary: SessionSummary = Field(default_factory=SessionSummary)

def new_session_id(start_time: datetime) -> str:
    """Sortable id: UTC start second plus a short random suffix."""
    return f"{start_time.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"

def summarize(speed_series: List[SpeedPoint],
              spin_series: List[SpinPoint],
              motion_event_count: int = 0,
              significant_motion_count: int = 0,
              peak_acceleration: float = 0.0,
              peak_angular_velocity: float = 0.0) -> SessionSummary:
    """
    Compute summary statistics for a finished burst.

    The dominant axis is the one reported most often by the spin estimator among
    samples that had a significant axis.

    Args:
        speed_series: speed samples in m/s
        spin_series: spin samples
        motion_event_count: number of MOVING onsets inside the burst
        significant_motion_count: acceleration samples above the significance threshold
        peak_acceleration: largest acceleration magnitude seen, m/s^2
        peak_angular_velocity: largest angular rate magnitude seen, deg/s

    Returns:
        SessionSummary
    """
    speeds = [p.speed for p in speed_series]
    rpms = [p.rpm for p in spin_series]
    max_speed = max(speeds) if speeds else 0.0
    avg_speed = float(np.mean(speeds)) if speeds else 0.0

    axes = Counter((p.axis_x, p.axis_y, p.axis_z) for p in spin_series
                   if (p.axis_x, p.axis_y, p.axis_z) != (0.0, 0.0, 0.0))
    dominant_axis = axes.most_common(1)[0][0] if axes else (0.0, 0.0, 0.0)

    return SessionSummary(
        max_speed=max_speed,
        avg_speed=avg_speed,
        max_rpm=max(rpms) if rpms else 0.0,
        avg_rpm=float(np.mean(rpms)) if rpms else 0.0,
        dominant_axis=dominant_axis,
        dominant_axis_label=describe_axis(dominant_axis),
        motion_event_count=motion_event_count,
        significant_motion_count=significant_motion_count,
        peak_acceleration=peak_acceleration,
        peak_angular_velocity=peak_angular_velocity,
        max_speed_mph=max_speed * MPS_TO_MPH,
        avg_speed_mph=avg_speed * MPS_TO_MPH,
    )

class SessionRecorder:
    """
    Accumulates the series of one LOGGING phase.

    Timestamps are engine-clock seconds; the wall-clock start time is taken when
    the recorder is created and the end time is derived from the engine duration.
    """

    def __init__(self, start_timestamp: float, significant_motion_g: float = 0.5,
                 started_at: Optional[datetime] = None):
        self.start_timestamp = start_timestamp
        self.started_at = started_at or datetime.now(timezone.utc)
        self.significant_threshold = significant_motion_g * STANDARD_GRAVITY
        self.speed_series: List[SpeedPoint] = []
        self.spin_series: List[SpinPoint] = []
        self.motion_event_count = 1
        self.significant_motion_count = 0
        self.peak_acceleration = 0.0
        self.peak_angular_velocity = 0.0
        self.last_timestamp = start_timestamp

    def duration(self, now: Optional[float] = None) -> float:
        end = self.last_timestamp if now is None else max(now, self.last_timestamp)
        return max(0.0, end - self.start_timestamp)

    def add_speed(self, timestamp: float, speed: float, acceleration) -> None:
        magnitude = float(np.linalg.norm(acceleration))
        self.peak_acceleration = max(self.peak_acceleration, magnitude)
        if magnitude > self.significant_threshold:
            self.significant_motion_count += 1
        self.speed_series.append(SpeedPoint(t=timestamp - self.start_timestamp, speed=speed))
        self.last_timestamp = max(self.last_timestamp, timestamp)

    def add_spin(self, timestamp: float, rpm: float, axis, angular_velocity) -> None:
        self.peak_angular_velocity = max(self.peak_angular_velocity,
                                         float(np.linalg.norm(angular_velocity)))
        x, y, z = (float(v) for v in axis)
        self.spin_series.append(SpinPoint(t=timestamp - self.start_timestamp, rpm=rpm,
                                          axis_x=x, axis_y=y, axis_z=z))
        self.last_timestamp = max(self.last_timestamp, timestamp)

    def note_motion_event(self) -> None:
        self.motion_event_count += 1

    @property
    def is_empty(self) -> bool:
        return not self.speed_series and not self.spin_series

    def build(self, end_timestamp: float) -> Session:
        duration = self.duration(end_timestamp)
        return Session(
            id=new_session_id(self.started_at),
            start_time=self.started_at,
            end_time=self.started_at + timedelta(seconds=duration),
            duration=duration,
            sample_count=len(self.speed_series),
            spin_sample_count=len(self.spin_series),
            speed_series=list(self.speed_series),
            spin_series=list(self.spin_series),
            summary=summarize(self.speed_series, self.spin_series,
                              motion_event_count=self.motion_event_count,
                              significant_motion_count=self.significant_motion_count,
                              peak_acceleration=self.peak_acceleration,
                              peak_angular_velocity=self.peak_angular_velocity),
        )
