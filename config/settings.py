"""
Centralized settings and tunable parameters for the pose fusion filter.

All noise levels, policy switches and demo parameters are defined here,
making it easy to tune the filter without modifying code logic.

Usage:
    from config.settings import get_settings
    settings = get_settings()
    print(settings.filter.accel_noise)
"""

from functools import lru_cache
from typing import Tuple
from pydantic import Field
from pydantic_settings import BaseSettings


class FilterSettings(BaseSettings):
    """Settings for the inertial / absolute pose EKF."""

    # Gravity expressed in the world frame (z up, so a resting
    # accelerometer reads +g along z)
    gravity: Tuple[float, float, float] = Field(
        default=(0.0, 0.0, 9.81),
        description="World-frame gravity vector (m/s^2)"
    )

    # Process noise
    position_process_noise: float = Field(
        default=1e-4,
        description="Position random-walk variance rate (m^2/s)"
    )
    accel_noise: float = Field(
        default=0.1,
        description="Accelerometer noise density (m/s^2/sqrt(Hz))"
    )
    gyro_noise: float = Field(
        default=0.01,
        description="Gyroscope noise density (rad/s/sqrt(Hz))"
    )

    # Measurement noise
    position_measurement_noise: float = Field(
        default=0.05,
        description="Observed position standard deviation (meters)"
    )
    orientation_measurement_noise: float = Field(
        default=0.01,
        description="Observed quaternion coefficient standard deviation"
    )

    # Initial uncertainty
    initial_covariance: float = Field(
        default=0.5,
        description="Diagonal of the error covariance after initialization"
    )

    # Update policies
    covariance_update: str = Field(
        default="simple",
        description="Covariance update form (simple, joseph)"
    )
    residual: str = Field(
        default="coefficient",
        description="Observation residual policy (coefficient, log_map)"
    )

    # Numerical guard
    max_innovation_condition: float = Field(
        default=1e12,
        description="Innovation covariance condition number above which updates are skipped"
    )


class SimulationSettings(BaseSettings):
    """Settings for the synthetic replay used by the demo."""

    imu_rate: float = Field(
        default=200.0,
        description="IMU sample rate (Hz)"
    )
    pose_rate: float = Field(
        default=10.0,
        description="Absolute pose observation rate (Hz)"
    )
    duration: float = Field(
        default=20.0,
        description="Simulated duration (seconds)"
    )
    radius: float = Field(
        default=5.0,
        description="Radius of the horizontal circle (meters)"
    )
    speed: float = Field(
        default=1.0,
        description="Tangential speed along the circle (m/s)"
    )
    vertical_amplitude: float = Field(
        default=0.5,
        description="Amplitude of the vertical oscillation (meters)"
    )
    accel_noise_std: float = Field(
        default=0.05,
        description="Simulated accelerometer white noise (m/s^2)"
    )
    gyro_noise_std: float = Field(
        default=0.005,
        description="Simulated gyroscope white noise (rad/s)"
    )
    position_noise_std: float = Field(
        default=0.02,
        description="Simulated observation position noise (meters)"
    )
    orientation_noise_std: float = Field(
        default=0.005,
        description="Simulated observation attitude noise (radians)"
    )
    observation_scale: float = Field(
        default=1.0,
        description="Scale factor baked into observed transforms"
    )
    max_final_position_error: float = Field(
        default=0.5,
        description="Final position error accepted by the demo (meters)"
    )


class LoggingSettings(BaseSettings):
    """Settings for logging and estimate recording."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_to_file: bool = Field(
        default=False,
        description="Whether to log to file"
    )
    log_directory: str = Field(
        default="logs",
        description="Directory for log files"
    )

    # Estimate recording
    record_estimates: bool = Field(
        default=False,
        description="Whether to record filter estimates"
    )
    record_directory: str = Field(
        default="estimates",
        description="Directory for estimate recordings"
    )
    record_rate: float = Field(
        default=20.0,
        description="Rate to record estimates (Hz of sample time)"
    )


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    This provides a single point of access for all system configuration.
    """

    filter: FilterSettings = Field(default_factory=FilterSettings)
    simulation: SimulationSettings = Field(default_factory=SimulationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_prefix = "FUSION_"  # Environment variables like FUSION_FILTER__ACCEL_NOISE
        env_nested_delimiter = "__"


@lru_cache()
def get_settings() -> Settings:
    """
    Get the global settings instance (cached singleton).

    Returns:
        Settings: The global settings object with all configuration.

    Example:
        settings = get_settings()
        sigma = settings.filter.position_measurement_noise
    """
    return Settings()
