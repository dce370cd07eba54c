"""
Mathematical helper functions for inertial / pose fusion.

Provides the rotation and transform operations used by the filter:
- Vector operations (magnitude, zero-safe normalization)
- Skew-symmetric (hat) operator
- Quaternion operations and the SO(3) exponential / logarithm maps
- Rotation matrix <-> quaternion <-> Euler conversions
- Similarity transform decomposition (scale, rotation, translation)

All functions use numpy arrays. Quaternions are stored as [w, x, y, z]
(Hamilton convention, rotating body-frame vectors into the world frame).
"""

import math
from typing import Tuple, Union

import numpy as np
from numpy.typing import NDArray


# Type aliases for clarity
Vector3 = NDArray[np.float64]  # 3D vector [x, y, z]
Quaternion = NDArray[np.float64]  # [w, x, y, z]
Matrix3 = NDArray[np.float64]  # 3x3 matrix
Matrix4 = NDArray[np.float64]  # 4x4 homogeneous transform

IDENTITY_QUATERNION = np.array([1.0, 0.0, 0.0, 0.0])


def vector_magnitude(vector: Union[Vector3, Tuple[float, ...]]) -> float:
    """
    Calculate the magnitude (length) of a vector.

    Args:
        vector: Input vector (any dimension)

    Returns:
        Magnitude of the vector

    Example:
        >>> vector_magnitude(np.array([3.0, 4.0, 0.0]))
        5.0
    """
    return float(np.linalg.norm(vector))


def vector_normalize(vector: Vector3) -> Vector3:
    """
    Normalize a vector to unit length.

    Args:
        vector: Input vector

    Returns:
        Unit vector in same direction, or zero vector if input is zero

    Example:
        >>> vector_normalize(np.array([3.0, 4.0, 0.0]))
        array([0.6, 0.8, 0.0])
    """
    vector = np.asarray(vector, dtype=np.float64)
    mag = vector_magnitude(vector)
    if mag < 1e-10:  # Avoid division by zero
        return np.zeros_like(vector)
    return vector / mag


def hat(vector: Vector3) -> Matrix3:
    """
    Skew-symmetric cross-product matrix of a 3D vector.

    Satisfies hat(v) @ x == np.cross(v, x).

    Args:
        vector: Input vector [x, y, z]

    Returns:
        3x3 skew-symmetric matrix
    """
    x, y, z = vector
    return np.array([
        [0.0, -z, y],
        [z, 0.0, -x],
        [-y, x, 0.0],
    ])


# =============================================================================
# Quaternion Operations
# =============================================================================


def quaternion_normalize(quat: Quaternion) -> Quaternion:
    """
    Normalize a quaternion to unit length.

    A (near) zero quaternion carries no rotation information and is
    replaced by the identity.

    Args:
        quat: Quaternion [w, x, y, z]

    Returns:
        Unit quaternion [w, x, y, z]
    """
    quat = np.asarray(quat, dtype=np.float64)
    norm = np.linalg.norm(quat)
    if norm < 1e-12:
        return IDENTITY_QUATERNION.copy()
    return quat / norm


def quaternion_multiply(q1: Quaternion, q2: Quaternion) -> Quaternion:
    """
    Hamilton product q1 * q2.

    Args:
        q1: Left quaternion [w, x, y, z]
        q2: Right quaternion [w, x, y, z]

    Returns:
        Product quaternion [w, x, y, z] (not renormalized)
    """
    w1, x1, y1, z1 = q1
    w2, x2, y2, z2 = q2

    return np.array([
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
    ])


def quaternion_conjugate(quat: Quaternion) -> Quaternion:
    """Conjugate (inverse for unit quaternions)."""
    w, x, y, z = quat
    return np.array([w, -x, -y, -z])


def so3_exp(rotation_vector: Vector3) -> Quaternion:
    """
    Exponential map from a rotation vector to a unit quaternion.

    For v with angle |v| and axis v/|v|:
        exp(v) = [cos(|v|/2), sin(|v|/2) * v/|v|]

    A zero-length vector maps exactly to the identity quaternion.

    Args:
        rotation_vector: Rotation vector (e.g. angular rate * dt) in radians

    Returns:
        Unit quaternion [w, x, y, z]

    Example:
        >>> so3_exp(np.array([0.0, 0.0, math.pi]))
        array([0., 0., 0., 1.])  # (cos term is ~6e-17)
    """
    rotation_vector = np.asarray(rotation_vector, dtype=np.float64)
    half = vector_magnitude(rotation_vector) / 2.0
    axis = vector_normalize(rotation_vector)
    xyz = math.sin(half) * axis
    return quaternion_normalize(np.array([math.cos(half), xyz[0], xyz[1], xyz[2]]))


def so3_log(quat: Quaternion) -> Vector3:
    """
    Logarithm map from a unit quaternion to a rotation vector.

    Inverse of so3_exp. Returns the shortest rotation, so q and -q
    give the same result.

    Args:
        quat: Unit quaternion [w, x, y, z]

    Returns:
        Rotation vector in radians (angle in [0, pi])
    """
    quat = quaternion_normalize(quat)
    if quat[0] < 0.0:
        quat = -quat

    xyz = quat[1:]
    sin_half = vector_magnitude(xyz)
    if sin_half < 1e-12:
        return 2.0 * xyz

    angle = 2.0 * math.atan2(sin_half, quat[0])
    return angle * xyz / sin_half


def quaternion_to_rotation_matrix(quat: Quaternion) -> Matrix3:
    """
    Convert a unit quaternion to a 3x3 rotation matrix.

    Args:
        quat: Quaternion [w, x, y, z]

    Returns:
        3x3 rotation matrix mapping body vectors to the world frame
    """
    w, x, y, z = quat

    xx, yy, zz = x * x, y * y, z * z
    xy, xz, yz = x * y, x * z, y * z
    wx, wy, wz = w * x, w * y, w * z

    return np.array([
        [1.0 - 2.0 * (yy + zz), 2.0 * (xy - wz), 2.0 * (xz + wy)],
        [2.0 * (xy + wz), 1.0 - 2.0 * (xx + zz), 2.0 * (yz - wx)],
        [2.0 * (xz - wy), 2.0 * (yz + wx), 1.0 - 2.0 * (xx + yy)],
    ])


def rotation_matrix_to_quaternion(rotation: Matrix3) -> Quaternion:
    """
    Convert a rotation matrix to a unit quaternion.

    Picks the numerically largest component first (Shepperd's method) and
    renormalizes, so an only approximately orthonormal input still yields
    a unit quaternion.

    Args:
        rotation: 3x3 rotation matrix

    Returns:
        Unit quaternion [w, x, y, z]
    """
    r = np.asarray(rotation, dtype=np.float64)
    trace = r[0, 0] + r[1, 1] + r[2, 2]

    if trace > 0.0:
        s = 2.0 * math.sqrt(trace + 1.0)
        quat = [
            0.25 * s,
            (r[2, 1] - r[1, 2]) / s,
            (r[0, 2] - r[2, 0]) / s,
            (r[1, 0] - r[0, 1]) / s,
        ]
    elif r[0, 0] > r[1, 1] and r[0, 0] > r[2, 2]:
        s = 2.0 * math.sqrt(1.0 + r[0, 0] - r[1, 1] - r[2, 2])
        quat = [
            (r[2, 1] - r[1, 2]) / s,
            0.25 * s,
            (r[0, 1] + r[1, 0]) / s,
            (r[0, 2] + r[2, 0]) / s,
        ]
    elif r[1, 1] > r[2, 2]:
        s = 2.0 * math.sqrt(1.0 + r[1, 1] - r[0, 0] - r[2, 2])
        quat = [
            (r[0, 2] - r[2, 0]) / s,
            (r[0, 1] + r[1, 0]) / s,
            0.25 * s,
            (r[1, 2] + r[2, 1]) / s,
        ]
    else:
        s = 2.0 * math.sqrt(1.0 + r[2, 2] - r[0, 0] - r[1, 1])
        quat = [
            (r[1, 0] - r[0, 1]) / s,
            (r[0, 2] + r[2, 0]) / s,
            (r[1, 2] + r[2, 1]) / s,
            0.25 * s,
        ]

    return quaternion_normalize(np.array(quat))


def quaternion_to_euler(quat: Quaternion) -> Tuple[float, float, float]:
    """
    Convert quaternion to Euler angles (roll, pitch, yaw).

    Args:
        quat: Quaternion [w, x, y, z]

    Returns:
        Tuple of (roll, pitch, yaw) in radians
    """
    w, x, y, z = quat

    # Roll (x-axis rotation)
    sinr_cosp = 2 * (w * x + y * z)
    cosr_cosp = 1 - 2 * (x * x + y * y)
    roll = math.atan2(sinr_cosp, cosr_cosp)

    # Pitch (y-axis rotation)
    sinp = 2 * (w * y - z * x)
    if abs(sinp) >= 1:
        pitch = math.copysign(math.pi / 2, sinp)  # Use 90 degrees if out of range
    else:
        pitch = math.asin(sinp)

    # Yaw (z-axis rotation)
    siny_cosp = 2 * (w * z + x * y)
    cosy_cosp = 1 - 2 * (y * y + z * z)
    yaw = math.atan2(siny_cosp, cosy_cosp)

    return (roll, pitch, yaw)


def euler_to_quaternion(
    roll: float,
    pitch: float,
    yaw: float
) -> Quaternion:
    """
    Convert Euler angles to quaternion.

    Args:
        roll: Roll angle in radians
        pitch: Pitch angle in radians
        yaw: Yaw angle in radians

    Returns:
        Quaternion [w, x, y, z]
    """
    cr = math.cos(roll / 2)
    sr = math.sin(roll / 2)
    cp = math.cos(pitch / 2)
    sp = math.sin(pitch / 2)
    cy = math.cos(yaw / 2)
    sy = math.sin(yaw / 2)

    w = cr * cp * cy + sr * sp * sy
    x = sr * cp * cy - cr * sp * sy
    y = cr * sp * cy + sr * cp * sy
    z = cr * cp * sy - sr * sp * cy

    return np.array([w, x, y, z])


# =============================================================================
# Similarity Transforms
# =============================================================================
# A similarity transform is [[s*R, t], [0, 1]] with R in SO(3), s > 0.


def get_scale(transform: Matrix4) -> float:
    """
    Isotropic scale of a similarity transform.

    Args:
        transform: 4x4 similarity transform

    Returns:
        Mean column norm of the upper-left 3x3 block
    """
    block = np.asarray(transform, dtype=np.float64)[:3, :3]
    return float(np.mean(np.linalg.norm(block, axis=0)))


def normalize_rotation(transform: Matrix4) -> Matrix3:
    """
    Proper rotation contained in a similarity transform.

    Removes the scale and projects the remaining block onto SO(3)
    (nearest rotation in the Frobenius sense), so slightly
    non-orthogonal inputs are tolerated.

    Args:
        transform: 4x4 similarity transform

    Returns:
        3x3 rotation matrix with determinant +1
    """
    block = np.asarray(transform, dtype=np.float64)[:3, :3] / get_scale(transform)
    u, _, vt = np.linalg.svd(block)
    rotation = u @ vt
    if np.linalg.det(rotation) < 0.0:
        u[:, -1] *= -1.0
        rotation = u @ vt
    return rotation


def make_transform(
    rotation: Matrix3,
    translation: Vector3,
    scale: float = 1.0,
) -> Matrix4:
    """
    Build a 4x4 similarity transform.

    Args:
        rotation: 3x3 rotation matrix
        translation: Translation [x, y, z] in meters
        scale: Isotropic scale applied to the rotation block

    Returns:
        4x4 homogeneous transform with bottom row [0, 0, 0, 1]
    """
    transform = np.eye(4)
    transform[:3, :3] = scale * np.asarray(rotation, dtype=np.float64)
    transform[:3, 3] = np.asarray(translation, dtype=np.float64)
    return transform
