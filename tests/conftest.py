"""
Pytest configuration and shared fixtures for pose fusion tests.
"""

import math

import numpy as np
import pytest

from state_estimation.filter_state import FilterConfig
from state_estimation.pose_ekf import PoseEKF
from utils.logger import reset_logger
from utils.math_helpers import (
    euler_to_quaternion,
    make_transform,
    quaternion_to_rotation_matrix,
)

GRAVITY = np.array([0.0, 0.0, 9.81])


@pytest.fixture(autouse=True)
def isolated_logging():
    """Undo any logging configuration a test installs."""
    yield
    reset_logger()


@pytest.fixture
def filter_config():
    """
    Explicit filter configuration, independent of environment settings.
    """
    return FilterConfig(
        gravity=GRAVITY.copy(),
        process_noise=np.diag([1e-4] * 3 + [1e-2] * 3 + [1e-4] * 3),
        measurement_noise=np.diag([0.05 ** 2] * 3 + [0.01 ** 2] * 4),
    )


@pytest.fixture
def identity_pose():
    """Identity 4x4 transform."""
    return np.eye(4)


@pytest.fixture
def rotated_pose():
    """Pose with a non-trivial attitude and offset."""
    quat = euler_to_quaternion(0.1, -0.2, 0.7)
    return make_transform(quaternion_to_rotation_matrix(quat), [1.0, -2.0, 0.5])


@pytest.fixture
def ekf(filter_config, identity_pose):
    """Filter initialized at the identity pose, at rest."""
    ekf = PoseEKF(config=filter_config)
    ekf.initialize(identity_pose, np.zeros(3))
    return ekf


@pytest.fixture
def moving_ekf(filter_config, rotated_pose):
    """
    Filter that has been propagated through a few IMU samples.

    Starts at rotated_pose with a small velocity and integrates a gentle
    turn, so the state is away from any trivial configuration.
    """
    ekf = PoseEKF(config=filter_config)
    ekf.initialize(rotated_pose, np.array([0.5, 0.1, 0.0]))

    R = rotated_pose[:3, :3]
    acc = R.T @ GRAVITY + np.array([0.2, 0.0, 0.1])
    gyro = np.array([0.05, -0.02, math.radians(20.0)])
    for k in range(20):
        ekf.predict(acc, gyro, k * 10_000_000)
    return ekf


def make_rng(seed: int = 42) -> np.random.Generator:
    """Deterministic random generator for property tests."""
    return np.random.default_rng(seed)
