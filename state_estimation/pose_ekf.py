"""
Extended Kalman Filter fusing IMU samples with absolute pose observations.

High-rate accelerometer / gyroscope samples drive the prediction step;
low-rate 4x4 similarity transforms from an external localization
pipeline drive the measurement update. The filter tracks position,
velocity, orientation and the scale of the most recent observation.

Nominal state: position p, velocity v (world frame), orientation q
(unit quaternion [w, x, y, z], body to world), scale s.
Error state: [dp(3), dv(3), dtheta(3)], with q_true = q * exp(dtheta).

Usage:
    ekf = PoseEKF()
    ekf.initialize(initial_pose, initial_velocity)

    for sample in imu_stream:              # time ordered
        ekf.predict(sample.acc, sample.gyro, sample.timestamp_ns)
        if pose_available:
            ekf.observe(pose, pose_timestamp_ns)

    T = ekf.get_state()

Not thread-safe: predict/observe must be called from one thread in
non-decreasing timestamp order.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from state_estimation.covariance import CovarianceUpdateFn, get_covariance_update
from state_estimation.filter_state import FilterConfig, FilterState
from state_estimation.jacobians import STATE_DIM, calc_f
from state_estimation.residuals import ResidualPolicy, get_residual_policy
from utils.logger import get_logger
from utils.math_helpers import (
    IDENTITY_QUATERNION,
    Matrix4,
    Vector3,
    get_scale,
    make_transform,
    normalize_rotation,
    quaternion_multiply,
    quaternion_normalize,
    quaternion_to_rotation_matrix,
    rotation_matrix_to_quaternion,
    so3_exp,
)

logger = get_logger(__name__)

NS_TO_S = 1e-9


@dataclass
class PoseEKF:
    """
    Error-state EKF for inertial / absolute pose fusion.

    The filter is inert until initialize() is called. The first predict()
    after that only records its timestamp, so the first propagation never
    spans the time before initialization.

    Attributes:
        config: Gravity, noise matrices and update policies
        position: World-frame position (m)
        velocity: World-frame velocity (m/s)
        orientation: Unit quaternion [w, x, y, z]
        scale: Scale of the last applied observation
        P: 9x9 error-state covariance
        last_timestamp_ns: Timestamp of the last predict() call
        is_initialized: Whether initialize() has run
    """

    config: FilterConfig = field(default_factory=FilterConfig.from_settings)

    position: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    velocity: NDArray[np.float64] = field(default_factory=lambda: np.zeros(3))
    orientation: NDArray[np.float64] = field(
        default_factory=lambda: IDENTITY_QUATERNION.copy()
    )
    scale: float = 1.0

    P: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros((STATE_DIM, STATE_DIM))
    )

    last_timestamp_ns: Optional[int] = None
    is_initialized: bool = False

    _residual: ResidualPolicy = field(init=False, repr=False)
    _covariance_update: CovarianceUpdateFn = field(init=False, repr=False)

    def __post_init__(self):
        """Resolve the configured update policies."""
        self._residual = get_residual_policy(self.config.residual)
        self._covariance_update = get_covariance_update(self.config.covariance_update)

    @property
    def is_updatable(self) -> bool:
        """True once initialized and a reference timestamp is known."""
        return self.is_initialized and self.last_timestamp_ns is not None

    def initialize(
        self,
        pose: Matrix4,
        velocity: Vector3 = (0.0, 0.0, 0.0),
    ) -> None:
        """
        Initialize the filter with a known pose.

        The rotation block may be only approximately orthonormal; it is
        projected onto SO(3) and the resulting quaternion renormalized.
        Scale and timestamp are left untouched.

        Args:
            pose: 4x4 (similarity) transform of the body in the world
            velocity: Initial world-frame velocity (m/s)
        """
        pose = np.asarray(pose, dtype=np.float64)

        self.position = pose[:3, 3].copy()
        self.orientation = rotation_matrix_to_quaternion(normalize_rotation(pose))
        self.velocity = np.array(velocity, dtype=np.float64)

        self.P = np.eye(STATE_DIM) * self.config.initial_covariance
        self.is_initialized = True

        logger.debug(
            "Pose filter initialized",
            position=self.position.tolist(),
            velocity=self.velocity.tolist(),
        )

    def predict(
        self,
        acc: Vector3,
        gyro: Vector3,
        timestamp_ns: int,
    ) -> None:
        """
        Predict step: propagate the state with one IMU sample.

        Constant acceleration over dt:
        p += v dt + 0.5 a dt^2,  v += a dt,  q = q * exp(w dt)
        with a = R acc - g.

        Args:
            acc: Specific force in the body frame (m/s^2)
            gyro: Angular rate in the body frame (rad/s)
            timestamp_ns: Sample time in nanoseconds
        """
        if not self.is_updatable:
            self.last_timestamp_ns = timestamp_ns
            return

        dt = (timestamp_ns - self.last_timestamp_ns) * NS_TO_S
        self.last_timestamp_ns = timestamp_ns
        if dt < 0:
            logger.debug("Out-of-order IMU sample", dt=dt, timestamp_ns=timestamp_ns)

        acc = np.asarray(acc, dtype=np.float64)
        gyro = np.asarray(gyro, dtype=np.float64)

        R = quaternion_to_rotation_matrix(self.orientation)
        dq = so3_exp(gyro * dt)

        # Predict state
        nominal_acc = R @ acc - self.config.gravity
        self.position = self.position + self.velocity * dt + 0.5 * nominal_acc * dt * dt
        self.velocity = self.velocity + nominal_acc * dt
        self.orientation = quaternion_normalize(quaternion_multiply(self.orientation, dq))

        # Propagate uncertainty
        F = calc_f(R, acc, dt)
        self.P = F @ self.P @ F.T + self.config.process_noise * dt

    def observe(self, pose: Matrix4, timestamp_ns: int) -> bool:
        """
        Update step: incorporate an absolute pose observation.

        Numerically unusable innovation covariances (not positive definite,
        non-finite or too badly conditioned) skip the update and leave the
        state unchanged.

        Args:
            pose: Observed 4x4 similarity transform
            timestamp_ns: Observation time in nanoseconds

        Returns:
            True if the update was applied, False if it was skipped
        """
        if not self.is_initialized:
            logger.warning("Pose filter not initialized, skipping observation",
                           timestamp_ns=timestamp_ns)
            return False

        pose = np.asarray(pose, dtype=np.float64)
        scale = get_scale(pose)
        observed_quat = rotation_matrix_to_quaternion(normalize_rotation(pose))
        observed_position = pose[:3, 3].copy()

        H = self._residual.jacobian(self.orientation)
        W = self._residual.noise(self.config.measurement_noise, self.orientation)

        # Innovation covariance
        S = H @ self.P @ H.T + W
        if not np.all(np.isfinite(S)):
            return self._skip_observation("non-finite innovation covariance", timestamp_ns)
        try:
            L = np.linalg.cholesky(S)
        except np.linalg.LinAlgError:
            return self._skip_observation("innovation covariance not positive definite",
                                          timestamp_ns)
        condition = float(np.linalg.cond(S))
        if condition > self.config.max_innovation_condition:
            return self._skip_observation("ill-conditioned innovation covariance",
                                          timestamp_ns, condition=condition)

        # Kalman gain K = P H^T S^-1 from the Cholesky factor S = L L^T
        PHt = self.P @ H.T
        K = np.linalg.solve(L.T, np.linalg.solve(L, PHt.T)).T

        error = self._residual.residual(
            self.position, self.orientation, observed_position, observed_quat
        )
        dx = K @ error

        self.position = self.position + dx[0:3]
        self.velocity = self.velocity + dx[3:6]
        self.orientation = quaternion_normalize(
            quaternion_multiply(self.orientation, so3_exp(dx[6:9]))
        )
        self.P = self._covariance_update(self.P, K, H, W)
        self.scale = scale

        logger.debug(
            "Observation applied",
            timestamp_ns=timestamp_ns,
            innovation_norm=float(np.linalg.norm(error)),
            scale=scale,
        )
        return True

    def _skip_observation(self, reason: str, timestamp_ns: int, **kwargs) -> bool:
        logger.warning("Skipping observation", reason=reason,
                       timestamp_ns=timestamp_ns, **kwargs)
        return False

    def get_state(self) -> Matrix4:
        """
        Current estimate as a 4x4 similarity transform.

        Returns:
            [[scale * R(q), p], [0, 0, 0, 1]]
        """
        return make_transform(
            quaternion_to_rotation_matrix(self.orientation),
            self.position,
            self.scale,
        )

    def snapshot(self) -> FilterState:
        """Copy of the full belief, safe to keep after further updates."""
        return FilterState(
            position=self.position.copy(),
            velocity=self.velocity.copy(),
            orientation=self.orientation.copy(),
            scale=self.scale,
            covariance=self.P.copy(),
            last_timestamp_ns=self.last_timestamp_ns,
            is_initialized=self.is_initialized,
        )

    def get_position(self) -> Tuple[float, float, float]:
        """Get current estimated position."""
        return (float(self.position[0]), float(self.position[1]), float(self.position[2]))

    def get_velocity(self) -> Tuple[float, float, float]:
        """Get current estimated velocity."""
        return (float(self.velocity[0]), float(self.velocity[1]), float(self.velocity[2]))

    def get_orientation(self) -> Tuple[float, float, float, float]:
        """Get current orientation quaternion (w, x, y, z)."""
        w, x, y, z = self.orientation
        return (float(w), float(x), float(y), float(z))

    def get_position_uncertainty(self) -> Tuple[float, float, float]:
        """Get 1-sigma position uncertainty."""
        return (
            float(np.sqrt(self.P[0, 0])),
            float(np.sqrt(self.P[1, 1])),
            float(np.sqrt(self.P[2, 2]))
        )

    def get_attitude_uncertainty(self) -> Tuple[float, float, float]:
        """Get 1-sigma attitude error uncertainty (radians)."""
        return (
            float(np.sqrt(self.P[6, 6])),
            float(np.sqrt(self.P[7, 7])),
            float(np.sqrt(self.P[8, 8]))
        )
