"""
Tests for the bisection period search.
"""

import warnings

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedcube.config import SolverConfig
from feedcube.errors import ConvergenceWarning
from feedcube.model import HybridModel
from feedcube.period import estimate_period

COARSE = SolverConfig(rtol=1e-8, atol=1e-10, max_step=1e-2)


class TestEstimatePeriod:
    """Tests for estimate_period."""

    def test_warns_when_out_of_iterations(self):
        model = HybridModel(solver=COARSE)
        with pytest.warns(ConvergenceWarning):
            T = estimate_period(model, 4.5, 5.0, max_iter=1)
        assert T == pytest.approx(4.75)

    def test_leaves_model_solved_at_estimate(self):
        model = HybridModel(solver=COARSE)
        with pytest.warns(ConvergenceWarning):
            T = model.estimate_period(4.5, 5.0, max_iter=1)
        assert model.is_solved
        assert model.horizon == T
        assert model.t[-1] == pytest.approx(T)

    def test_reversed_bracket(self):
        model = HybridModel(solver=COARSE)
        with pytest.warns(ConvergenceWarning):
            T = estimate_period(model, 5.0, 4.5, max_iter=1)
        assert T == pytest.approx(4.75)

    def test_narrow_bracket_converges(self):
        model = HybridModel(solver=COARSE)
        with warnings.catch_warnings():
            warnings.simplefilter("error", ConvergenceWarning)
            T = estimate_period(model, 4.88, 4.89, max_iter=20, target=1e-3)
        assert 4.88 <= T <= 4.89
        assert np.isfinite(model.final_state).all()

    def test_warning_points_at_caller(self):
        """Both entry points attribute the warning to the calling line."""
        model = HybridModel(solver=COARSE)
        with pytest.warns(ConvergenceWarning) as record:
            estimate_period(model, 4.5, 5.0, max_iter=1)
        assert record[0].filename == __file__

        with pytest.warns(ConvergenceWarning) as record:
            model.estimate_period(4.5, 5.0, max_iter=1)
        assert record[0].filename == __file__
