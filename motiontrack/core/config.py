"""
Configuration management system for motiontrack.

This module provides Pydantic models for type-safe configuration with validation
and environment variable integration. Every section can be overridden through
environment variables (e.g. MOTIONTRACK_DETECTOR_START_MARGIN=0.4) or a .env file.
"""

from typing import Optional
from enum import Enum
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from motiontrack.motion.units import SpeedUnit

class LogLevel(str, Enum):
    """Log levels for the application."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

class IntegratorMode(str, Enum):
    """How the velocity integrator reports speed."""
    SESSION = "session"  # raw integrated speed, used for recorded bursts
    DISPLAY = "display"  # smoothed for a continuous live readout

def _check_alpha(v: float) -> float:
    if not 0.0 < v <= 1.0:
        raise ValueError("Filter coefficient must be in (0, 1]")
    return v

class BaseConfig(BaseSettings):
    """
    Base configuration class with common settings for all components.

    All other configuration classes should inherit from this class.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MOTIONTRACK_",
        extra="ignore",
    )

    debug: bool = False
    log_level: LogLevel = LogLevel.INFO

class SamplingConfig(BaseConfig):
    """Nominal feed rates and time-delta guards applied to every sample."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_SAMPLING_")

    acceleration_rate_hz: float = 100.0   # 50-800 Hz depending on tier
    angular_rate_hz: float = 100.0        # 100-3200 Hz
    min_dt: float = 0.002                 # seconds, deltas are clamped to [min_dt, max_dt]
    max_dt: float = 0.1
    max_gap: float = 1.0                  # seconds, larger jumps are dropped as anomalies
    max_abs_acceleration_g: float = 32.0  # beyond any sensor range, dropped as anomalies
    max_abs_angular_rate_dps: float = 4000.0

    @field_validator("acceleration_rate_hz", "angular_rate_hz", "min_dt", "max_dt", "max_gap",
                     "max_abs_acceleration_g", "max_abs_angular_rate_dps")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Sampling values must be positive")
        return v

    @model_validator(mode="after")
    def validate_dt_range(self):
        if not self.min_dt < self.max_dt <= self.max_gap:
            raise ValueError("Expected min_dt < max_dt <= max_gap")
        return self

class DetectorConfig(BaseConfig):
    """Windowed RMS motion detector with hysteresis and debounce."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_DETECTOR_")

    low_pass_alpha: float = 0.1
    rms_window_seconds: float = 0.25
    min_window_samples: int = 5
    max_window_samples: int = 200
    baseline_alpha: float = 0.05          # slow baseline tracking while not moving
    start_margin: float = 0.25            # m/s^2 above baseline to start moving
    stop_margin: float = 0.10             # m/s^2 above baseline to remain moving
    start_min_duration: float = 0.15      # seconds above start threshold to confirm start
    stop_min_duration: float = 0.30       # seconds below stop threshold to confirm stop
    stationary_time_threshold: float = 0.5  # seconds near baseline before a zero-velocity update

    @field_validator("low_pass_alpha", "baseline_alpha")
    @classmethod
    def validate_alpha(cls, v):
        return _check_alpha(v)

    @model_validator(mode="after")
    def validate_margins(self):
        if self.stop_margin <= 0 or self.start_margin <= 0:
            raise ValueError("Hysteresis margins must be positive")
        if self.stop_margin >= self.start_margin:
            raise ValueError("stop_margin must be smaller than start_margin")
        if self.min_window_samples < 1 or self.max_window_samples < self.min_window_samples:
            raise ValueError("Invalid RMS window bounds")
        return self

class IntegratorConfig(BaseConfig):
    """Dead-reckoning velocity integrator."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_INTEGRATOR_")

    mode: IntegratorMode = IntegratorMode.SESSION
    low_pass_alpha: float = 0.1
    bias_alpha: float = 0.05
    velocity_decay_tau: Optional[float] = 0.5   # seconds; None disables decay
    horizontal_speed: bool = True
    display_unit: SpeedUnit = SpeedUnit.MPH
    smoothing_window: int = 10
    noise_floor_mph: float = 0.5

    @field_validator("low_pass_alpha", "bias_alpha")
    @classmethod
    def validate_alpha(cls, v):
        return _check_alpha(v)

    @field_validator("velocity_decay_tau")
    @classmethod
    def validate_tau(cls, v):
        if v is not None and v <= 0:
            raise ValueError("velocity_decay_tau must be positive or None")
        return v

class SpinConfig(BaseConfig):
    """Angular-rate filtering and dominant axis tracking."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_SPIN_")

    low_pass_alpha: float = 0.2
    average_window: int = 10
    axis_significance_dps: float = 50.0

    @field_validator("low_pass_alpha")
    @classmethod
    def validate_alpha(cls, v):
        return _check_alpha(v)

class CalibrationConfig(BaseConfig):
    """Stationary warm-up window run before detection is armed."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_CALIBRATION_")

    duration: float = 2.0
    min_samples: int = 10
    max_retries: int = 1

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v <= 0:
            raise ValueError("Calibration duration must be positive")
        return v

class RecordingConfig(BaseConfig):
    """Capture cycle timing."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_RECORDING_")

    motion_end_delay: float = 1.0         # settle delay after motion stops
    ready_display_seconds: float = 1.0    # how long READY is shown before the next phase
    continuous_capture: bool = False      # READY -> MONITORING instead of IDLE
    min_capture_duration: float = 0.25    # shorter bursts are discarded on stop()
    significant_motion_g: float = 0.5     # samples above this count as significant motion

    @field_validator("motion_end_delay", "ready_display_seconds", "min_capture_duration")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Durations must not be negative")
        return v

class EngineConfig(BaseConfig):
    """All parameters of one capture cycle. Passed to start()."""
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    detector: DetectorConfig = Field(default_factory=DetectorConfig)
    integrator: IntegratorConfig = Field(default_factory=IntegratorConfig)
    spin: SpinConfig = Field(default_factory=SpinConfig)
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)
    recording: RecordingConfig = Field(default_factory=RecordingConfig)

class StoreConfig(BaseConfig):
    """Session persistence."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_STORE_")

    directory: str = "~/MotionTrackLogs"
    file_prefix: str = "throw_log"

class EventConfig(BaseConfig):
    """Configuration for the event system."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_EVENT_")

    max_trace_events: int = 1000
    tracing_enabled: bool = True

class ServiceConfig(BaseConfig):
    """Configuration for the engine service loop."""
    model_config = SettingsConfigDict(env_prefix="MOTIONTRACK_SERVICE_")

    tick_interval: float = 0.05       # seconds between clock ticks on the event queue
    snapshot_interval: float = 0.1    # minimum spacing of published snapshots
    queue_maxsize: int = 10000
    service_shutdown_timeout: float = 5.0
    max_clock_skew: float = 1.0        # seconds a rebased feed timestamp may drift before re-anchoring

    @field_validator("tick_interval", "snapshot_interval", "max_clock_skew")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Service intervals must be positive")
        return v

class ApplicationConfig(BaseConfig):
    """
    Main application configuration that combines all component configurations.

    This is the top-level configuration class that should be used by the application.
    """
    model_config = SettingsConfigDict(env_nested_delimiter="__")

    engine: EngineConfig = Field(default_factory=EngineConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    event: EventConfig = Field(default_factory=EventConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)

def get_config() -> ApplicationConfig:
    """
    Get the application configuration.

    Returns:
        The validated ApplicationConfig instance
    """
    return ApplicationConfig()
