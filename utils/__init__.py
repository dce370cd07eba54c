"""
Utility modules for the pose fusion filter.

This package contains helper functions and utilities used throughout
the project, including logging, rotation math, synthetic sensor
streams and estimate recording.
"""

from utils.logger import setup_logger, get_logger, reset_logger
from utils.math_helpers import (
    hat,
    so3_exp,
    so3_log,
    quaternion_multiply,
    quaternion_normalize,
    quaternion_to_rotation_matrix,
    rotation_matrix_to_quaternion,
    make_transform,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "reset_logger",
    "hat",
    "so3_exp",
    "so3_log",
    "quaternion_multiply",
    "quaternion_normalize",
    "quaternion_to_rotation_matrix",
    "rotation_matrix_to_quaternion",
    "make_transform",
]
