"""
Synthetic IMU and absolute pose streams for replaying the filter.

Generates a ground-truth trajectory, the body-frame IMU samples a
strapdown unit would measure along it, and lower-rate pose observations
in the same 4x4 similarity-transform form an external localization
pipeline would deliver.

Trajectory:
    - Horizontal circle of given radius at constant tangential speed
    - Body x axis aligned with the direction of travel (constant yaw rate)
    - Optional vertical sinusoid at twice the circling frequency

Usage:
    sim = TrajectorySimulator.from_settings(seed=7)
    run = sim.generate()

    for event in run.events():
        ...
"""

import math
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

import numpy as np
from numpy.typing import NDArray

from config.settings import Settings, get_settings
from utils.logger import get_logger
from utils.math_helpers import (
    Matrix4,
    Vector3,
    euler_to_quaternion,
    make_transform,
    quaternion_to_rotation_matrix,
    so3_exp,
)

logger = get_logger(__name__)


@dataclass
class ImuSample:
    """Single IMU sample (body frame)."""

    timestamp_ns: int
    acc: Vector3  # Specific force (m/s^2)
    gyro: Vector3  # Angular rate (rad/s)


@dataclass
class PoseObservation:
    """Absolute pose delivered by the localization pipeline."""

    timestamp_ns: int
    transform: Matrix4  # 4x4 similarity transform


@dataclass
class SimulatedRun:
    """
    Output of one simulation.

    Truth arrays are sampled at the IMU timestamps.
    """

    imu_samples: List[ImuSample]
    observations: List[PoseObservation]
    timestamps_ns: NDArray[np.int64]
    positions: NDArray[np.float64]  # (N, 3)
    velocities: NDArray[np.float64]  # (N, 3)
    orientations: NDArray[np.float64]  # (N, 4) [w, x, y, z]

    @property
    def initial_pose(self) -> Matrix4:
        """True pose at the first IMU timestamp."""
        return make_transform(
            quaternion_to_rotation_matrix(self.orientations[0]),
            self.positions[0],
        )

    @property
    def initial_velocity(self) -> Vector3:
        return self.velocities[0].copy()

    def events(self) -> Iterator[Union[ImuSample, PoseObservation]]:
        """
        Yield IMU samples and observations in timestamp order.

        An observation sharing its timestamp with an IMU sample comes
        after that sample.
        """
        obs_index = 0
        for sample in self.imu_samples:
            yield sample
            while (obs_index < len(self.observations)
                   and self.observations[obs_index].timestamp_ns <= sample.timestamp_ns):
                yield self.observations[obs_index]
                obs_index += 1
        yield from self.observations[obs_index:]


@dataclass
class TrajectorySimulator:
    """
    Generates synthetic sensor streams along a circular trajectory.

    Attributes:
        imu_rate: IMU sample rate (Hz)
        pose_rate: Observation rate (Hz), rounded to a whole IMU divisor
        duration: Length of the run (seconds)
        radius: Circle radius (meters)
        speed: Tangential speed (m/s)
        vertical_amplitude: Vertical oscillation amplitude (meters)
        gravity: World-frame gravity vector (m/s^2)
        accel_noise_std: Accelerometer white noise (m/s^2)
        gyro_noise_std: Gyroscope white noise (rad/s)
        position_noise_std: Observation position noise (meters)
        orientation_noise_std: Observation attitude noise (radians)
        observation_scale: Scale baked into observed transforms
        seed: Random seed
    """

    imu_rate: float = 200.0
    pose_rate: float = 10.0
    duration: float = 20.0
    radius: float = 5.0
    speed: float = 1.0
    vertical_amplitude: float = 0.5
    gravity: NDArray[np.float64] = field(
        default_factory=lambda: np.array([0.0, 0.0, 9.81])
    )
    accel_noise_std: float = 0.0
    gyro_noise_std: float = 0.0
    position_noise_std: float = 0.0
    orientation_noise_std: float = 0.0
    observation_scale: float = 1.0
    seed: Optional[int] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        seed: Optional[int] = None,
    ) -> "TrajectorySimulator":
        """Create a simulator from the simulation settings section."""
        settings = settings or get_settings()
        sim = settings.simulation
        return cls(
            imu_rate=sim.imu_rate,
            pose_rate=sim.pose_rate,
            duration=sim.duration,
            radius=sim.radius,
            speed=sim.speed,
            vertical_amplitude=sim.vertical_amplitude,
            gravity=np.array(settings.filter.gravity, dtype=np.float64),
            accel_noise_std=sim.accel_noise_std,
            gyro_noise_std=sim.gyro_noise_std,
            position_noise_std=sim.position_noise_std,
            orientation_noise_std=sim.orientation_noise_std,
            observation_scale=sim.observation_scale,
            seed=seed,
        )

    def generate(self) -> SimulatedRun:
        """
        Generate the truth trajectory and sensor streams.

        Returns:
            SimulatedRun with IMU samples, observations and truth arrays
        """
        rng = np.random.default_rng(self.seed)

        num_samples = int(round(self.duration * self.imu_rate)) + 1
        t = np.arange(num_samples) / self.imu_rate
        timestamps_ns = np.round(t * 1e9).astype(np.int64)

        omega = self.speed / self.radius  # Yaw rate (rad/s)
        vertical_omega = 2.0 * omega
        theta = omega * t
        amp = self.vertical_amplitude

        positions = np.column_stack([
            self.radius * np.cos(theta),
            self.radius * np.sin(theta),
            amp * np.sin(vertical_omega * t),
        ])
        velocities = np.column_stack([
            -self.radius * omega * np.sin(theta),
            self.radius * omega * np.cos(theta),
            amp * vertical_omega * np.cos(vertical_omega * t),
        ])
        accelerations = np.column_stack([
            -self.radius * omega ** 2 * np.cos(theta),
            -self.radius * omega ** 2 * np.sin(theta),
            -amp * vertical_omega ** 2 * np.sin(vertical_omega * t),
        ])

        # Body x axis along the horizontal direction of travel
        yaw = theta + math.pi / 2
        orientations = np.array([euler_to_quaternion(0.0, 0.0, y) for y in yaw])

        imu_samples = []
        for k in range(num_samples):
            R = quaternion_to_rotation_matrix(orientations[k])
            acc = R.T @ (accelerations[k] + self.gravity)
            gyro = np.array([0.0, 0.0, omega])
            if self.accel_noise_std > 0:
                acc = acc + rng.normal(0.0, self.accel_noise_std, 3)
            if self.gyro_noise_std > 0:
                gyro = gyro + rng.normal(0.0, self.gyro_noise_std, 3)
            imu_samples.append(ImuSample(int(timestamps_ns[k]), acc, gyro))

        step = max(1, int(round(self.imu_rate / self.pose_rate)))
        observations = []
        for k in range(step, num_samples, step):
            R = quaternion_to_rotation_matrix(orientations[k])
            position = positions[k]
            if self.orientation_noise_std > 0:
                noise = rng.normal(0.0, self.orientation_noise_std, 3)
                R = R @ quaternion_to_rotation_matrix(so3_exp(noise))
            if self.position_noise_std > 0:
                position = position + rng.normal(0.0, self.position_noise_std, 3)
            observations.append(PoseObservation(
                int(timestamps_ns[k]),
                make_transform(R, position, self.observation_scale),
            ))

        logger.debug(
            "Simulated run generated",
            imu_samples=len(imu_samples),
            observations=len(observations),
            duration=self.duration,
        )

        return SimulatedRun(
            imu_samples=imu_samples,
            observations=observations,
            timestamps_ns=timestamps_ns,
            positions=positions,
            velocities=velocities,
            orientations=orientations,
        )
