"""
Jacobian builders for the pose fusion EKF.

Error state ordering: [dp(3), dv(3), dtheta(3)]
Observation ordering: [p(3), qw, qx, qy, qz]
"""

import numpy as np
from numpy.typing import NDArray

from utils.math_helpers import Matrix3, Quaternion, Vector3, hat

STATE_DIM = 9
OBSERVATION_DIM = 7


def calc_f(rotation: Matrix3, acc: Vector3, dt: float) -> NDArray[np.float64]:
    """
    Discrete state-transition Jacobian of the error state.

    Args:
        rotation: Body-to-world rotation at the start of the interval
        acc: Measured specific force in the body frame (m/s^2)
        dt: Interval length in seconds

    Returns:
        9x9 matrix F
    """
    F = np.eye(STATE_DIM)
    F[0:3, 3:6] = np.eye(3) * dt
    F[3:6, 6:9] = -hat(rotation @ np.asarray(acc, dtype=np.float64)) * dt
    return F


def quaternion_error_jacobian(quat: Quaternion) -> NDArray[np.float64]:
    """
    4x3 matrix mapping a small attitude error to a quaternion differential.

    For q' = q * exp(dtheta), q' - q ~= 0.5 * Xi(q) @ dtheta.
    """
    w, x, y, z = quat
    return np.array([
        [-x, -y, -z],
        [w, -z, y],
        [z, w, -x],
        [-y, x, w],
    ])


def calc_h(quat: Quaternion) -> NDArray[np.float64]:
    """
    Observation Jacobian for a [position, quaternion] measurement.

    Position is observed directly, velocity is unobserved and the
    quaternion block is linearized around the current estimate.

    Args:
        quat: Current (predicted) orientation [w, x, y, z]

    Returns:
        7x9 matrix H
    """
    H = np.zeros((OBSERVATION_DIM, STATE_DIM))
    H[0:3, 0:3] = np.eye(3)
    H[3:7, 6:9] = 0.5 * quaternion_error_jacobian(quat)
    return H


def to_vec(position: Vector3, quat: Quaternion) -> NDArray[np.float64]:
    """Pack a pose as [x, y, z, qw, qx, qy, qz]."""
    vec = np.empty(OBSERVATION_DIM)
    vec[0:3] = position
    vec[3:7] = quat
    return vec
