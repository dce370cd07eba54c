"""
Observation residual policies.

A policy decides how the difference between an observed pose and the
current estimate is expressed, together with the matching Jacobian and
measurement noise:

- CoefficientResidual: componentwise difference of [p, qw, qx, qy, qz].
  This is the default. It is a small-angle approximation: the quaternion
  coefficient difference only matches the linearized H when predicted and
  observed attitudes are close, and large corrections are biased.
- LogMapResidual: position difference plus the SO(3) logarithm of the
  relative rotation, with H taken directly on the attitude error.
"""

from abc import ABC, abstractmethod
from typing import Dict, Type

import numpy as np
from numpy.typing import NDArray

from state_estimation.jacobians import (
    STATE_DIM,
    calc_h,
    quaternion_error_jacobian,
    to_vec,
)
from utils.math_helpers import (
    Quaternion,
    Vector3,
    quaternion_conjugate,
    quaternion_multiply,
    so3_log,
)

Matrix = NDArray[np.float64]


class ResidualPolicy(ABC):
    """Interface shared by the residual policies."""

    name: str = ""
    dim: int = 0

    @abstractmethod
    def jacobian(self, quat: Quaternion) -> Matrix:
        """Observation Jacobian with respect to the error state."""

    @abstractmethod
    def noise(self, W: Matrix, quat: Quaternion) -> Matrix:
        """Measurement noise in residual coordinates."""

    @abstractmethod
    def residual(
        self,
        position: Vector3,
        quat: Quaternion,
        observed_position: Vector3,
        observed_quat: Quaternion,
    ) -> NDArray[np.float64]:
        """Observed minus predicted, in residual coordinates."""


class CoefficientResidual(ResidualPolicy):
    """7-D residual on raw quaternion coefficients."""

    name = "coefficient"
    dim = 7

    def jacobian(self, quat: Quaternion) -> Matrix:
        return calc_h(quat)

    def noise(self, W: Matrix, quat: Quaternion) -> Matrix:
        return W

    def residual(self, position, quat, observed_position, observed_quat):
        # q and -q are the same rotation; difference within one hemisphere
        if np.dot(observed_quat, quat) < 0.0:
            observed_quat = -observed_quat
        return to_vec(observed_position, observed_quat) - to_vec(position, quat)


class LogMapResidual(ResidualPolicy):
    """6-D residual [dp, log(q^-1 * q_obs)] on the attitude-error tangent space."""

    name = "log_map"
    dim = 6

    def jacobian(self, quat: Quaternion) -> Matrix:
        H = np.zeros((self.dim, STATE_DIM))
        H[0:3, 0:3] = np.eye(3)
        H[3:6, 6:9] = np.eye(3)
        return H

    def noise(self, W: Matrix, quat: Quaternion) -> Matrix:
        # dtheta ~= 2 Xi^T dq for unit q
        xi = quaternion_error_jacobian(quat)
        R = np.zeros((self.dim, self.dim))
        R[0:3, 0:3] = W[0:3, 0:3]
        R[3:6, 3:6] = 4.0 * xi.T @ W[3:7, 3:7] @ xi
        return R

    def residual(self, position, quat, observed_position, observed_quat):
        relative = quaternion_multiply(quaternion_conjugate(quat), observed_quat)
        error = np.empty(self.dim)
        error[0:3] = np.asarray(observed_position) - np.asarray(position)
        error[3:6] = so3_log(relative)
        return error


_POLICIES: Dict[str, Type[ResidualPolicy]] = {
    CoefficientResidual.name: CoefficientResidual,
    LogMapResidual.name: LogMapResidual,
}


def get_residual_policy(name: str) -> ResidualPolicy:
    """
    Create a residual policy by name.

    Args:
        name: "coefficient" or "log_map"

    Returns:
        ResidualPolicy instance

    Raises:
        ValueError: If the name is unknown
    """
    if name not in _POLICIES:
        raise ValueError(
            f"Unknown residual policy '{name}', expected one of {sorted(_POLICIES)}"
        )
    return _POLICIES[name]()
