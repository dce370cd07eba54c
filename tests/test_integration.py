"""
Integration tests for the pose fusion system.

These tests verify that the filter, the simulator, the recorder and the
demo entry point work together correctly.
"""

import csv
import dataclasses

import numpy as np
import pytest

from config.settings import get_settings, Settings
from main import main, run_replay
from state_estimation.filter_state import FilterConfig, FilterState
from state_estimation.pose_ekf import PoseEKF
from utils.estimate_recorder import EstimateRecorder
from utils.math_helpers import get_scale, quaternion_to_rotation_matrix
from utils.trajectory_simulator import ImuSample, PoseObservation, TrajectorySimulator


class TestConfigurationLoading:
    """Test configuration modules load correctly."""

    def test_settings_loads(self):
        """Test that settings can be loaded."""
        settings = get_settings()
        assert isinstance(settings, Settings)
        assert settings.filter.initial_covariance > 0

    def test_settings_has_all_sections(self):
        """Test that settings has all expected sections."""
        settings = get_settings()

        assert hasattr(settings, "filter")
        assert hasattr(settings, "simulation")
        assert hasattr(settings, "logging")

    def test_default_policies(self):
        """The inherited residual and simple covariance update are the defaults."""
        config = FilterConfig.from_settings(get_settings())
        assert config.residual == "coefficient"
        assert config.covariance_update == "simple"


class TestTrajectorySimulator:
    """Test the synthetic sensor streams."""

    @pytest.fixture
    def run(self):
        """Noise-free two second run."""
        return TrajectorySimulator(imu_rate=100.0, pose_rate=10.0, duration=2.0).generate()

    def test_sample_counts(self, run):
        """One IMU sample per period plus the start, one pose every tenth sample."""
        assert len(run.imu_samples) == 201
        assert len(run.observations) == 20
        assert run.positions.shape == (201, 3)

    def test_observations_align_with_imu(self, run):
        """Every observation shares its timestamp with an IMU sample."""
        imu_times = {s.timestamp_ns for s in run.imu_samples}
        assert all(o.timestamp_ns in imu_times for o in run.observations)

    def test_events_are_time_ordered(self, run):
        """Merged events never go back in time and include everything."""
        events = list(run.events())
        times = [e.timestamp_ns for e in events]
        assert times == sorted(times)
        assert sum(isinstance(e, ImuSample) for e in events) == len(run.imu_samples)
        assert sum(isinstance(e, PoseObservation) for e in events) == len(run.observations)

    def test_observation_scale(self):
        """The configured scale is baked into observed transforms."""
        run = TrajectorySimulator(duration=1.0, observation_scale=1.7).generate()
        assert get_scale(run.observations[0].transform) == pytest.approx(1.7)

    def test_dead_reckoning_matches_truth(self, run):
        """Predict-only integration of noise-free IMU follows the truth closely."""
        ekf = PoseEKF(config=FilterConfig())
        ekf.initialize(run.initial_pose, run.initial_velocity)

        for sample in run.imu_samples[:101]:
            ekf.predict(sample.acc, sample.gyro, sample.timestamp_ns)

        assert np.linalg.norm(ekf.position - run.positions[100]) < 0.01
        assert np.linalg.norm(ekf.velocity - run.velocities[100]) < 0.01

    def test_seed_is_deterministic(self):
        """Same seed, same noise."""
        sim = TrajectorySimulator(duration=1.0, accel_noise_std=0.1, seed=5)
        a = sim.generate()
        b = sim.generate()
        np.testing.assert_array_equal(a.imu_samples[10].acc, b.imu_samples[10].acc)


class TestReplay:
    """End-to-end filter runs on simulated data."""

    @pytest.fixture
    def noisy_run(self):
        """Ten seconds of noisy IMU and pose data."""
        return TrajectorySimulator(
            imu_rate=200.0,
            pose_rate=10.0,
            duration=10.0,
            accel_noise_std=0.05,
            gyro_noise_std=0.005,
            position_noise_std=0.02,
            orientation_noise_std=0.005,
            seed=3,
        ).generate()

    @pytest.mark.parametrize("covariance_update,residual", [
        ("simple", "coefficient"),
        ("joseph", "coefficient"),
        ("simple", "log_map"),
        ("joseph", "log_map"),
    ])
    def test_tracks_truth(self, noisy_run, filter_config, covariance_update, residual):
        """All policy combinations stay close to the true trajectory."""
        config = dataclasses.replace(
            filter_config, covariance_update=covariance_update, residual=residual
        )
        ekf = PoseEKF(config=config)

        result = run_replay(ekf, noisy_run)

        assert result["observations_applied"] == len(noisy_run.observations)
        assert result["observations_skipped"] == 0
        assert result["final_position_error_m"] < 0.2
        assert result["final_attitude_error_rad"] < 0.05
        assert np.linalg.norm(ekf.orientation) == pytest.approx(1.0, abs=1e-6)
        np.testing.assert_allclose(ekf.P, ekf.P.T, atol=1e-9)

    def test_scaled_observations(self, filter_config):
        """The observation scale is reported through get_state()."""
        run = TrajectorySimulator(duration=2.0, observation_scale=1.5).generate()
        ekf = PoseEKF(config=filter_config)
        run_replay(ekf, run)

        assert ekf.scale == pytest.approx(1.5)
        T = ekf.get_state()
        R = T[:3, :3] / ekf.scale
        np.testing.assert_allclose(R, quaternion_to_rotation_matrix(run.orientations[-1]),
                                   atol=1e-3)

    def test_observations_bound_uncertainty(self, noisy_run, filter_config):
        """With observations the position sigma settles well below its start."""
        ekf = PoseEKF(config=filter_config)
        run_replay(ekf, noisy_run)
        assert max(ekf.get_position_uncertainty()) < 0.1


class TestEstimateRecorder:
    """Test estimate recording."""

    def _state(self, t_ns, x=0.0):
        return FilterState(
            position=np.array([x, 0.0, 0.0]),
            velocity=np.array([1.0, 0.0, 0.0]),
            covariance=np.eye(9) * 0.01,
            last_timestamp_ns=t_ns,
            is_initialized=True,
        )

    def test_not_recording(self):
        """Nothing is recorded before start()."""
        recorder = EstimateRecorder()
        assert recorder.record(self._state(0)) is False

    def test_uninitialized_state_skipped(self):
        """Snapshots of an uninitialized filter are ignored."""
        recorder = EstimateRecorder()
        recorder.start()
        assert recorder.record(FilterState()) is False

    def test_rate_limiting(self):
        """Frames are limited to the configured rate in sample time."""
        recorder = EstimateRecorder()
        recorder.start()
        for k in range(101):
            recorder.record(self._state(k * 10_000_000, x=k * 0.01))
        recorder.stop()

        rate = get_settings().logging.record_rate
        expected = 1.0 * rate + 1
        assert abs(len(recorder.frames) - expected) <= 0.25 * expected
        assert recorder.frames[0].timestamp == 0.0

    def test_save_and_statistics(self, tmp_path, monkeypatch):
        """Frames are written to CSV and summarized."""
        monkeypatch.chdir(tmp_path)
        recorder = EstimateRecorder()
        recorder.start()
        for k in range(0, 1_000_000_000, 100_000_000):
            recorder.record(self._state(k, x=k * 1e-9))
        recorder.stop()

        path = recorder.save("run.csv")
        with open(path, newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0][0] == "timestamp"
        assert len(rows) == len(recorder.frames) + 1

        stats = recorder.get_statistics()
        assert stats["total_frames"] == len(recorder.frames)
        assert stats["avg_velocity_ms"] == pytest.approx(1.0)

    def test_empty_statistics(self):
        """Statistics report an error without frames."""
        assert "error" in EstimateRecorder().get_statistics()


class TestEntryPoint:
    """Test the replay demo entry point."""

    def test_main_succeeds(self):
        """A short default replay finishes within the error threshold."""
        assert main(["--duration", "3", "--seed", "1"]) == 0

    def test_main_with_alternative_policies(self):
        """Joseph form and log-map residual can be selected from the CLI."""
        assert main(["--duration", "3", "--joseph", "--log-map"]) == 0
