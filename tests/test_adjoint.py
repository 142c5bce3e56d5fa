"""
Tests for the backward adjoint (phase-response) pass.
"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedcube.adjoint import DEFAULT_Z0, _domain_lookup, _unique_samples, phase_response
from feedcube.config import SolverConfig
from feedcube.domains import Domain, PINNED
from feedcube.errors import ConfigError, NotSolvedError
from feedcube.model import HybridModel


COARSE = SolverConfig(rtol=1e-8, atol=1e-10, max_step=1e-2)


@pytest.fixture(scope="module")
def solved():
    model = HybridModel(solver=COARSE)
    model.solve()
    return model


class TestUniqueSamples:
    """Tests for de-duplicating transition samples."""

    def test_keeps_last_of_repeats(self):
        t = np.array([0.0, 1.0, 1.0, 2.0])
        y = np.array([[0.0], [1.0], [5.0], [2.0]])
        t_u, y_u = _unique_samples(t, y)
        np.testing.assert_array_equal(t_u, [0.0, 1.0, 2.0])
        np.testing.assert_array_equal(y_u[:, 0], [0.0, 5.0, 2.0])


class TestPhaseResponse:
    """Tests for phase_response."""

    def test_requires_solve(self):
        with pytest.raises(NotSolvedError):
            phase_response(HybridModel())

    def test_runs_backward_over_whole_trajectory(self, solved):
        response = solved.phase_response()
        assert response.t[0] == pytest.approx(solved.horizon)
        assert response.t[-1] == pytest.approx(0.0)
        assert np.all(np.diff(response.t) <= 0)
        assert response.z.shape == (response.t.size, 6)
        assert np.all(np.isfinite(response.z))

    def test_starts_from_z0(self, solved):
        response = solved.phase_response()
        np.testing.assert_array_equal(response.z[0], DEFAULT_Z0)

        custom = (0.0, 1.0, 0.0, 0.0, 0.0, 0.0)
        response = phase_response(solved, custom)
        np.testing.assert_array_equal(response.z[0], custom)

    def test_rejects_bad_z0(self, solved):
        with pytest.raises(ConfigError):
            solved.phase_response([1.0, 0.0])

    def test_to_frame(self, solved):
        df = solved.phase_response().to_frame()
        assert list(df.columns) == ["t", "z0", "z1", "z2", "z3", "z4", "z5"]


class TestDomainLookup:
    """Tests for the recorded-domain lookup used by the adjoint."""

    def test_last_sample_at_or_before(self):
        t = np.array([0.0, 1.0, 2.0])
        domains = np.array([0, 1, 5], dtype=np.int8)
        domain_at = _domain_lookup(t, domains)
        assert domain_at(0.0) == Domain.INTERIOR
        assert domain_at(0.5) == Domain.INTERIOR
        assert domain_at(1.0) == Domain.WALL_X
        assert domain_at(1.999) == Domain.WALL_X
        assert domain_at(2.0) == Domain.EDGE_XY

    def test_clips_outside_range(self):
        domain_at = _domain_lookup(np.array([1.0, 2.0]), np.array([2, 3], dtype=np.int8))
        assert domain_at(-1.0) == Domain.WALL_Y
        assert domain_at(5.0) == Domain.WALL_Z

    def test_repeated_time_uses_post_transition_domain(self):
        t = np.array([0.0, 1.0, 1.0, 2.0])
        domains = np.array([0, 0, 1, 1], dtype=np.int8)
        t_u, dom_u = _unique_samples(t, domains)
        assert _domain_lookup(t_u, dom_u)(1.0) == Domain.WALL_X


class TestSeveralPeriods:
    """Adjoint pass over a trajectory spanning about four periods."""

    @pytest.fixture(scope="class")
    def long_solve(self):
        model = HybridModel(horizon=20.0, solver=COARSE)
        model.solve()
        return model

    def test_visits_walls(self, long_solve):
        """Pinned activities are clamped only at entry and may drift by rounding."""
        y = long_solve.y
        domains = long_solve.domains
        on_wall = [k for k in range(len(domains)) if PINNED[Domain(int(domains[k]))]]
        assert on_wall
        assert np.all(y[:, :3] >= -1e-9)

    def test_runs_to_start(self, long_solve):
        response = long_solve.phase_response()
        assert response.t[0] == pytest.approx(20.0)
        assert response.t[-1] == pytest.approx(0.0)
        assert np.all(np.diff(response.t) <= 0)
        assert np.all(np.isfinite(response.z))

    def test_every_exit_crossed(self, long_solve):
        """The backward pass integrates across every recorded exit time."""
        response = long_solve.phase_response()
        exits = long_solve.transitions.exits
        assert len(exits) > 4
        for record in exits:
            assert np.any(np.isclose(response.t, record.t, rtol=0.0, atol=1e-12))
