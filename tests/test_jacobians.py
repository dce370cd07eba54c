"""
Tests for the EKF Jacobian builders.
"""

import numpy as np
import pytest

from state_estimation.jacobians import (
    calc_f,
    calc_h,
    quaternion_error_jacobian,
    to_vec,
)
from utils.math_helpers import (
    euler_to_quaternion,
    hat,
    quaternion_multiply,
    quaternion_to_rotation_matrix,
    so3_exp,
)


class TestStateTransitionJacobian:
    """Tests for calc_f."""

    def test_zero_dt_is_identity(self):
        """With dt = 0 the transition is the identity."""
        R = quaternion_to_rotation_matrix(euler_to_quaternion(0.1, 0.2, 0.3))
        F = calc_f(R, np.array([0.5, -0.2, 9.8]), 0.0)
        np.testing.assert_array_equal(F, np.eye(9))

    def test_blocks(self):
        """Position/velocity and velocity/attitude blocks follow the model."""
        R = quaternion_to_rotation_matrix(euler_to_quaternion(0.0, 0.0, 0.6))
        acc = np.array([0.3, 0.1, 9.81])
        dt = 0.01
        F = calc_f(R, acc, dt)

        assert F.shape == (9, 9)
        np.testing.assert_allclose(F[0:3, 3:6], np.eye(3) * dt)
        np.testing.assert_allclose(F[3:6, 6:9], -hat(R @ acc) * dt)
        np.testing.assert_array_equal(np.diag(F), np.ones(9))

    def test_unmodelled_blocks_are_zero(self):
        """Position does not depend directly on attitude, attitude on nothing."""
        F = calc_f(np.eye(3), np.array([1.0, 2.0, 3.0]), 0.1)
        np.testing.assert_array_equal(F[0:3, 6:9], np.zeros((3, 3)))
        np.testing.assert_array_equal(F[6:9, 0:6], np.zeros((3, 6)))
        np.testing.assert_array_equal(F[3:6, 0:3], np.zeros((3, 3)))


class TestObservationJacobian:
    """Tests for calc_h."""

    def test_layout(self):
        """Position observed directly, velocity unobserved."""
        q = euler_to_quaternion(0.3, -0.1, 1.0)
        H = calc_h(q)

        assert H.shape == (7, 9)
        np.testing.assert_array_equal(H[0:3, 0:3], np.eye(3))
        np.testing.assert_array_equal(H[:, 3:6], np.zeros((7, 3)))
        np.testing.assert_array_equal(H[0:3, 6:9], np.zeros((3, 3)))
        np.testing.assert_array_equal(H[3:7, 0:3], np.zeros((4, 3)))
        np.testing.assert_allclose(H[3:7, 6:9], 0.5 * quaternion_error_jacobian(q))

    def test_identity_quaternion_block(self):
        """At the identity the quaternion block maps dtheta to the vector part."""
        H = calc_h(np.array([1.0, 0.0, 0.0, 0.0]))
        expected = np.zeros((4, 3))
        expected[1:4, :] = 0.5 * np.eye(3)
        np.testing.assert_array_equal(H[3:7, 6:9], expected)

    @pytest.mark.parametrize("axis", [0, 1, 2])
    def test_quaternion_block_matches_finite_difference(self, axis):
        """The quaternion block is the derivative of q * exp(dtheta)."""
        q = euler_to_quaternion(0.4, 0.2, -0.9)
        eps = 1e-6
        dtheta = np.zeros(3)
        dtheta[axis] = eps

        numeric = (quaternion_multiply(q, so3_exp(dtheta)) - q) / eps
        np.testing.assert_allclose(calc_h(q)[3:7, 6 + axis], numeric, atol=1e-6)

    def test_error_jacobian_columns_orthonormal(self):
        """Xi(q)^T Xi(q) = I for unit q."""
        xi = quaternion_error_jacobian(euler_to_quaternion(1.0, -0.5, 0.25))
        np.testing.assert_allclose(xi.T @ xi, np.eye(3), atol=1e-12)


class TestPacking:
    """Tests for to_vec."""

    def test_to_vec_ordering(self):
        """Position first, then w, x, y, z."""
        vec = to_vec(np.array([1.0, 2.0, 3.0]), np.array([0.5, 0.1, 0.2, 0.3]))
        np.testing.assert_array_equal(vec, [1.0, 2.0, 3.0, 0.5, 0.1, 0.2, 0.3])
