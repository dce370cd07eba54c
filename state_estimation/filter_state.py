"""
Configuration and state snapshot types for the pose fusion EKF.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from config.settings import Settings, get_settings
from state_estimation.covariance import get_covariance_update
from state_estimation.jacobians import OBSERVATION_DIM, STATE_DIM
from state_estimation.residuals import get_residual_policy
from utils.math_helpers import (
    IDENTITY_QUATERNION,
    make_transform,
    quaternion_to_rotation_matrix,
)


@dataclass
class FilterConfig:
    """
    Constants of one estimator instance.

    Attributes:
        gravity: World-frame gravity vector subtracted from R @ acc (m/s^2)
        process_noise: 9x9 noise density L Q L^T, injected as L Q L^T * dt
        measurement_noise: 7x7 covariance W of [p, qw, qx, qy, qz]
        initial_covariance: Diagonal value of P after initialize()
        covariance_update: Covariance update form ("simple" or "joseph")
        residual: Observation residual policy ("coefficient" or "log_map")
        max_innovation_condition: Condition number of S above which an
            observation is skipped
    """

    gravity: NDArray[np.float64] = field(
        default_factory=lambda: np.array([0.0, 0.0, 9.81])
    )
    process_noise: NDArray[np.float64] = field(
        default_factory=lambda: np.eye(STATE_DIM) * 1e-3
    )
    measurement_noise: NDArray[np.float64] = field(
        default_factory=lambda: np.eye(OBSERVATION_DIM) * 1e-3
    )
    initial_covariance: float = 0.5
    covariance_update: str = "simple"
    residual: str = "coefficient"
    max_innovation_condition: float = 1e12

    def __post_init__(self):
        """Coerce arrays to float64 and validate shapes and policy names."""
        self.gravity = np.asarray(self.gravity, dtype=np.float64)
        self.process_noise = np.asarray(self.process_noise, dtype=np.float64)
        self.measurement_noise = np.asarray(self.measurement_noise, dtype=np.float64)

        if self.gravity.shape != (3,):
            raise ValueError(f"gravity must have shape (3,), got {self.gravity.shape}")
        if self.process_noise.shape != (STATE_DIM, STATE_DIM):
            raise ValueError(
                f"process_noise must be {STATE_DIM}x{STATE_DIM}, "
                f"got {self.process_noise.shape}"
            )
        if self.measurement_noise.shape != (OBSERVATION_DIM, OBSERVATION_DIM):
            raise ValueError(
                f"measurement_noise must be {OBSERVATION_DIM}x{OBSERVATION_DIM}, "
                f"got {self.measurement_noise.shape}"
            )

        get_covariance_update(self.covariance_update)
        get_residual_policy(self.residual)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FilterConfig":
        """
        Build a configuration from the filter settings section.

        Args:
            settings: Settings to read (defaults to the global settings)

        Returns:
            FilterConfig with diagonal noise matrices
        """
        settings = settings or get_settings()
        fs = settings.filter

        process_noise = np.diag(
            [fs.position_process_noise] * 3
            + [fs.accel_noise ** 2] * 3
            + [fs.gyro_noise ** 2] * 3
        )
        measurement_noise = np.diag(
            [fs.position_measurement_noise ** 2] * 3
            + [fs.orientation_measurement_noise ** 2] * 4
        )

        return cls(
            gravity=np.array(fs.gravity, dtype=np.float64),
            process_noise=process_noise,
            measurement_noise=measurement_noise,
            initial_covariance=fs.initial_covariance,
            covariance_update=fs.covariance_update,
            residual=fs.residual,
            max_innovation_condition=fs.max_innovation_condition,
        )


@dataclass
class FilterState:
    """Copy of the estimator belief at one instant."""

    position: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    velocity: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    orientation: NDArray[np.float64] = field(
        default_factory=lambda: IDENTITY_QUATERNION.copy()
    )
    scale: float = 1.0
    covariance: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros((STATE_DIM, STATE_DIM))
    )
    last_timestamp_ns: Optional[int] = None
    is_initialized: bool = False

    @property
    def transform(self) -> NDArray[np.float64]:
        """4x4 similarity transform [[scale * R, p], [0, 1]]."""
        return make_transform(
            quaternion_to_rotation_matrix(self.orientation),
            self.position,
            self.scale,
        )
