"""
Estimate recording for offline analysis of filter runs.

Records filter snapshots during a replay or live run for post-run
analysis, debugging, and noise tuning.

Usage:
    recorder = EstimateRecorder()
    recorder.start()

    # After each predict / observe
    recorder.record(ekf.snapshot())

    recorder.stop()
    recorder.save("run_001.csv")
"""

import csv
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import numpy as np

from config.settings import get_settings
from state_estimation.filter_state import FilterState
from utils.logger import get_logger
from utils.math_helpers import quaternion_to_euler

logger = get_logger(__name__)


@dataclass
class EstimateFrame:
    """Single frame of recorded estimates."""

    timestamp: float  # Seconds since the first recorded sample

    # Position (world frame, meters)
    position_x: float
    position_y: float
    position_z: float

    # Velocity (world frame, m/s)
    velocity_x: float
    velocity_y: float
    velocity_z: float

    # Attitude (radians)
    roll: float
    pitch: float
    yaw: float

    scale: float = 1.0

    # 1-sigma uncertainties
    position_sigma: float = 0.0
    attitude_sigma: float = 0.0


@dataclass
class EstimateRecorder:
    """
    Records filter estimates during a run.

    Stores frames in memory, then saves to CSV for analysis. Rate
    limiting uses the sample timestamps, so replays faster than real
    time record the same frames as live runs.

    Attributes:
        frames: List of recorded frames
        is_recording: Whether recording is active
        start_timestamp_ns: Timestamp of the first recorded sample
    """

    frames: List[EstimateFrame] = field(default_factory=list)
    is_recording: bool = False
    start_timestamp_ns: Optional[int] = None
    _record_interval: float = field(default=0.05)  # 20 Hz default
    _last_record_time: Optional[float] = field(default=None)

    def __post_init__(self):
        settings = get_settings()
        self._record_interval = 1.0 / settings.logging.record_rate

    def start(self) -> None:
        """Start recording estimates."""
        self.frames = []
        self.is_recording = True
        self.start_timestamp_ns = None
        self._last_record_time = None
        logger.info("Estimate recording started")

    def stop(self) -> None:
        """Stop recording estimates."""
        self.is_recording = False
        duration = self.frames[-1].timestamp if self.frames else 0.0
        logger.info(
            "Estimate recording stopped",
            frames=len(self.frames),
            duration_seconds=round(duration, 2)
        )

    def record(self, state: FilterState) -> bool:
        """
        Record a frame if enough sample time has passed.

        Args:
            state: Filter snapshot to record

        Returns:
            True if frame was recorded, False if skipped (not recording,
            uninitialized filter or rate limiting)
        """
        if not self.is_recording or not state.is_initialized:
            return False
        if state.last_timestamp_ns is None:
            return False

        if self.start_timestamp_ns is None:
            self.start_timestamp_ns = state.last_timestamp_ns
        elapsed = (state.last_timestamp_ns - self.start_timestamp_ns) * 1e-9

        # Rate limiting
        if (self._last_record_time is not None
                and elapsed - self._last_record_time < self._record_interval):
            return False

        self._last_record_time = elapsed

        roll, pitch, yaw = quaternion_to_euler(state.orientation)
        diag = np.diag(state.covariance)

        frame = EstimateFrame(
            timestamp=elapsed,
            position_x=float(state.position[0]),
            position_y=float(state.position[1]),
            position_z=float(state.position[2]),
            velocity_x=float(state.velocity[0]),
            velocity_y=float(state.velocity[1]),
            velocity_z=float(state.velocity[2]),
            roll=roll,
            pitch=pitch,
            yaw=yaw,
            scale=state.scale,
            position_sigma=float(np.sqrt(np.sum(diag[0:3]))),
            attitude_sigma=float(np.sqrt(np.sum(diag[6:9]))),
        )

        self.frames.append(frame)
        return True

    def save(self, filename: Optional[str] = None) -> Path:
        """
        Save recorded estimates to CSV file.

        Args:
            filename: Output filename (auto-generated if not provided)

        Returns:
            Path to saved file
        """
        settings = get_settings()

        output_dir = Path(settings.logging.record_directory)
        output_dir.mkdir(parents=True, exist_ok=True)

        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"estimates_{timestamp}.csv"

        filepath = output_dir / filename

        with open(filepath, "w", newline="") as f:
            writer = csv.writer(f)

            writer.writerow([
                "timestamp",
                "position_x", "position_y", "position_z",
                "velocity_x", "velocity_y", "velocity_z",
                "roll", "pitch", "yaw",
                "scale", "position_sigma", "attitude_sigma"
            ])

            for frame in self.frames:
                writer.writerow([
                    frame.timestamp,
                    frame.position_x, frame.position_y, frame.position_z,
                    frame.velocity_x, frame.velocity_y, frame.velocity_z,
                    frame.roll, frame.pitch, frame.yaw,
                    frame.scale, frame.position_sigma, frame.attitude_sigma
                ])

        logger.info("Estimates saved", filepath=str(filepath), frames=len(self.frames))
        return filepath

    def get_statistics(self) -> dict:
        """
        Calculate statistics from recorded estimates.

        Returns:
            Dictionary with run statistics
        """
        if not self.frames:
            return {"error": "No estimates recorded"}

        positions = np.array([
            (f.position_x, f.position_y, f.position_z) for f in self.frames
        ])
        velocities = np.array([
            (f.velocity_x, f.velocity_y, f.velocity_z) for f in self.frames
        ])

        vel_magnitudes = np.linalg.norm(velocities, axis=1)

        position_diffs = np.diff(positions, axis=0)
        distances = np.linalg.norm(position_diffs, axis=1)
        total_distance = np.sum(distances)

        return {
            "duration_seconds": self.frames[-1].timestamp,
            "total_frames": len(self.frames),
            "total_distance_m": round(float(total_distance), 2),
            "max_velocity_ms": round(float(np.max(vel_magnitudes)), 2),
            "avg_velocity_ms": round(float(np.mean(vel_magnitudes)), 2),
            "final_position_sigma_m": round(self.frames[-1].position_sigma, 4),
        }
