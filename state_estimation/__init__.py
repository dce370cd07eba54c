"""
State estimation module for inertial / absolute pose fusion.

This module handles:
- Error-state EKF propagation with IMU samples
- Measurement updates from absolute similarity-transform poses
- Jacobians, residual policies and covariance update forms
"""

from state_estimation.filter_state import FilterConfig, FilterState
from state_estimation.pose_ekf import PoseEKF

__all__ = ["FilterConfig", "FilterState", "PoseEKF"]
