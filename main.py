#!/usr/bin/env python3
"""
Pose Fusion EKF - Replay Demo
Main Entry Point

Runs the inertial / absolute pose EKF on a simulated trajectory:
high-rate IMU samples drive predict(), lower-rate similarity-transform
poses drive observe(), interleaved in timestamp order.

Usage:
    # Default replay from settings
    python main.py

    # Joseph-form covariance update and log-map residual
    python main.py --joseph --log-map

    # Record estimates to CSV
    python main.py --record
"""

import argparse
import dataclasses
import sys
from typing import Optional, Sequence

import numpy as np

from config.settings import get_settings
from state_estimation.filter_state import FilterConfig
from state_estimation.pose_ekf import PoseEKF
from utils.estimate_recorder import EstimateRecorder
from utils.logger import setup_logger, get_logger
from utils.math_helpers import quaternion_multiply, quaternion_conjugate, so3_log
from utils.trajectory_simulator import ImuSample, SimulatedRun, TrajectorySimulator

logger = get_logger(__name__)


def run_replay(
    ekf: PoseEKF,
    run: SimulatedRun,
    recorder: Optional[EstimateRecorder] = None,
) -> dict:
    """
    Feed a simulated run through the filter.

    Args:
        ekf: Filter to drive (initialized here from the run's first truth pose)
        run: Simulated sensor streams and truth
        recorder: Optional estimate recorder

    Returns:
        Dictionary with update counts and final errors against truth
    """
    ekf.initialize(run.initial_pose, run.initial_velocity)

    applied = 0
    skipped = 0
    for event in run.events():
        if isinstance(event, ImuSample):
            ekf.predict(event.acc, event.gyro, event.timestamp_ns)
        elif ekf.observe(event.transform, event.timestamp_ns):
            applied += 1
        else:
            skipped += 1

        if recorder:
            recorder.record(ekf.snapshot())

    position_error = float(np.linalg.norm(ekf.position - run.positions[-1]))
    velocity_error = float(np.linalg.norm(ekf.velocity - run.velocities[-1]))
    relative = quaternion_multiply(quaternion_conjugate(run.orientations[-1]), ekf.orientation)
    attitude_error = float(np.linalg.norm(so3_log(relative)))

    return {
        "observations_applied": applied,
        "observations_skipped": skipped,
        "final_position_error_m": position_error,
        "final_velocity_error_ms": velocity_error,
        "final_attitude_error_rad": attitude_error,
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run the replay demo.

    Returns:
        Exit code: 0 if the final position error is within the configured
        threshold, 1 otherwise
    """
    args = parse_args(argv)
    setup_logger(log_level="DEBUG" if args.verbose else None)

    settings = get_settings()

    config = FilterConfig.from_settings(settings)
    if args.joseph:
        config = dataclasses.replace(config, covariance_update="joseph")
    if args.log_map:
        config = dataclasses.replace(config, residual="log_map")

    simulator = TrajectorySimulator.from_settings(settings, seed=args.seed)
    if args.duration is not None:
        simulator.duration = args.duration
    if args.imu_rate is not None:
        simulator.imu_rate = args.imu_rate
    if args.pose_rate is not None:
        simulator.pose_rate = args.pose_rate

    logger.info(
        "Starting replay",
        duration=simulator.duration,
        imu_rate=simulator.imu_rate,
        pose_rate=simulator.pose_rate,
        covariance_update=config.covariance_update,
        residual=config.residual,
    )

    run = simulator.generate()
    ekf = PoseEKF(config=config)

    recorder = None
    if args.record or settings.logging.record_estimates:
        recorder = EstimateRecorder()
        recorder.start()

    result = run_replay(ekf, run, recorder)

    if recorder:
        recorder.stop()
        recorder.save()
        logger.info("Run statistics", **recorder.get_statistics())

    logger.info("Replay complete", **result)

    threshold = settings.simulation.max_final_position_error
    if result["final_position_error_m"] > threshold:
        logger.error(
            "Final position error above threshold",
            error=result["final_position_error_m"],
            threshold=threshold,
        )
        return 1
    return 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Pose Fusion EKF - replay on a simulated trajectory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run default replay
    python main.py

    # Longer run with slower pose updates
    python main.py --duration 60 --pose-rate 2

    # Verbose logging
    python main.py --verbose
        """,
    )

    parser.add_argument(
        "--duration", "-d",
        type=float,
        default=None,
        help="Simulated duration in seconds (default: from settings)",
    )

    parser.add_argument(
        "--imu-rate",
        type=float,
        default=None,
        help="IMU rate in Hz (default: from settings)",
    )

    parser.add_argument(
        "--pose-rate",
        type=float,
        default=None,
        help="Pose observation rate in Hz (default: from settings)",
    )

    parser.add_argument(
        "--joseph",
        action="store_true",
        help="Use the Joseph-form covariance update",
    )

    parser.add_argument(
        "--log-map",
        action="store_true",
        help="Use the SO(3) log-map observation residual",
    )

    parser.add_argument(
        "--record", "-r",
        action="store_true",
        help="Record estimates to CSV",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=0,
        help="Random seed for sensor noise (default: 0)",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser.parse_args(argv)


if __name__ == "__main__":
    sys.exit(main())
