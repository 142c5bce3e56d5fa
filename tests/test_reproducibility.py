"""
Tests for reproducibility of simulations and saved runs.

Verifies that identical configurations produce identical results, that the
config hash is stable, and that saved runs load back unchanged.
"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedcube.config import Config, load_config, save_config, validate_config
from feedcube.errors import ConfigError
from feedcube.io import (
    compute_config_hash,
    create_run_folder,
    get_latest_run,
    list_runs,
    load_results,
    load_solution,
    save_results,
    save_solution,
)
from feedcube.model import HybridModel
from feedcube.sweep import run_sweep


@pytest.fixture
def tiny_config(tmp_path):
    """Create a tiny configuration for fast testing."""
    config = Config()
    config.run.out_dir = str(tmp_path / "out")
    config.initial.horizon = 1.0
    config.solver.rtol = 1e-8
    config.solver.atol = 1e-10
    config.solver.max_step = 1e-2
    config.sweep.n_angle = 1
    config.sweep.n_thresh = 2
    config.sweep.horizon = 11.0
    config.sweep.t_discard = 10.0
    return config


class TestReproducibility:
    """Tests for simulation reproducibility."""

    def test_identical_solves(self, tiny_config):
        """Two models built from the same config give identical trajectories."""
        first = HybridModel.from_config(tiny_config)
        second = HybridModel.from_config(tiny_config)
        first.solve()
        second.solve()

        np.testing.assert_array_equal(first.t, second.t)
        np.testing.assert_array_equal(first.y, second.y)

    def test_identical_sweeps(self, tiny_config):
        result1 = run_sweep(tiny_config)
        result2 = run_sweep(tiny_config)

        np.testing.assert_array_equal(
            result1.intake_rate, result2.intake_rate,
            err_msg="intake_rate arrays differ between runs"
        )
        np.testing.assert_array_equal(result1.grasper_switches, result2.grasper_switches)
        assert result1.config_hash == result2.config_hash


class TestConfigHash:
    """Tests for configuration hashing."""

    def test_same_config_same_hash(self):
        assert compute_config_hash(Config()) == compute_config_hash(Config())

    def test_different_config_different_hash(self):
        other = Config()
        other.initial.horizon = 10.0
        assert compute_config_hash(Config()) != compute_config_hash(other)

    def test_hash_length(self):
        assert len(compute_config_hash(Config())) == 12


class TestConfigIO:
    """Tests for loading, saving and validating configs."""

    def test_round_trip(self, tmp_path, tiny_config):
        tiny_config.initial.nu = (0.2, -0.1)
        path = tmp_path / "config.yaml"
        save_config(tiny_config, path)
        loaded = load_config(path)

        assert loaded.initial.horizon == 1.0
        assert loaded.initial.nu == [0.2, -0.1]
        assert loaded.solver.max_step == 1e-2
        assert loaded.model == tiny_config.model

    def test_partial_file_uses_defaults(self, tmp_path):
        path = tmp_path / "partial.yaml"
        path.write_text("model:\n  eps1: 2.0e-4\nunknown_section:\n  x: 1\n")
        config = load_config(path)
        assert config.model.eps1 == 2e-4
        assert config.model.eps2 == 1e-4
        assert config.sweep.n_angle == 60

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    @pytest.mark.parametrize("section, key, value", [
        ("initial", "xinit", [0.1, 0.2]),
        ("initial", "xinit", [-0.1, 0.2, 0.3, 0.7, 0.2, 0.6, 0.0, 0.01]),
        ("initial", "horizon", -1.0),
        ("solver", "method", "Euler"),
        ("solver", "max_step", 0.0),
        ("period", "max_iter", 0),
        ("sweep", "n_angle", 0),
        ("sweep", "t_discard", 100.0),
    ])
    def test_invalid_values(self, section, key, value):
        config = Config()
        setattr(getattr(config, section), key, value)
        with pytest.raises(ConfigError):
            validate_config(config)


class TestRunFolders:
    """Tests for saving and loading runs."""

    def test_solution_round_trip(self, tiny_config):
        tiny_config.initial.vinit = [1.0, 0.0, 0.0, 0.0, 0.0, 0.0]
        tiny_config.initial.lyapunov = True
        model = HybridModel.from_config(tiny_config)
        model.solve()
        response = model.phase_response()

        run_path = create_run_folder(tiny_config)
        paths = save_solution(model, tiny_config, run_path, phase_response=response)
        assert set(paths) == {"config", "json", "trajectory", "lyapunov", "prc"}

        record = load_solution(run_path)
        assert record.config.initial.lyapunov is True
        assert len(record.trajectory) == model.t.size
        np.testing.assert_allclose(record.trajectory["xr"], model.y[:, 5])
        assert record.metadata["final_state"] == pytest.approx(model.final_state.tolist())
        assert len(record.lyapunov) == model.t.size
        assert len(record.phase_response) == response.t.size

    def test_results_round_trip_keeps_failures(self, tiny_config, tmp_path):
        result = run_sweep(tiny_config)
        result.intake_rate[0, 1] = np.nan
        result.failed[0, 1] = True

        save_results(result, tmp_path / "run_x")
        loaded = load_results(tmp_path / "run_x")

        assert np.isnan(loaded.intake_rate[0, 1])
        assert loaded.failed[0, 1]
        assert loaded.intake_rate[0, 0] == result.intake_rate[0, 0]
        assert loaded.config_hash == result.config_hash

    def test_list_runs(self, tiny_config):
        out_dir = Path(tiny_config.run.out_dir)
        assert list_runs(out_dir) == []
        assert get_latest_run(out_dir) is None

        first = create_run_folder(tiny_config, "20260101_000000")
        second = create_run_folder(tiny_config, "20260102_000000")
        (out_dir / "not_a_run").mkdir()

        assert list_runs(out_dir) == [first, second]
        assert get_latest_run(out_dir) in (first, second)
