"""
Tests for saltation matrices, jump pairs and the transition log.
"""

import logging

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedcube.config import GrasperGeometry, ModelParams
from feedcube.domains import Domain, Grasper
from feedcube.errors import TransitionError
from feedcube.transitions import (
    TransitionLog,
    apply_transition,
    clamp,
    exit_jump,
    grasp_switch_jump,
    resolve_grasp_switch,
    saltation_matrix,
    wall_jump_pair,
)


@pytest.fixture
def params():
    return ModelParams()


def _state(head, xr=0.6, v=(0.3, -0.2, 0.4, 0.1, -0.5, 0.25)):
    y = np.zeros(14)
    y[:3] = head
    y[3:8] = [0.7, 0.2, xr, 0.0, 0.01]
    y[8:] = v
    return y


@pytest.fixture
def near_threshold():
    """State close to the default threshold y + z = 0.5."""
    return _state((0.01, 0.3, 0.2))


class TestClamp:
    """Tests for constraint clamping."""

    def test_pinned_coordinates_exactly_zero(self):
        y = _state((1e-13, 0.2, -1e-15))
        out = clamp(y, Domain.EDGE_XZ)
        assert out[0] == 0.0 and out[2] == 0.0
        assert out[1] == 0.2
        # Input is left untouched
        assert y[0] == 1e-13

    def test_interior_is_copy(self):
        y = _state((0.1, 0.2, 0.3))
        np.testing.assert_array_equal(clamp(y, Domain.INTERIOR), y)


class TestSaltation:
    """Tests for geometric saltation matrices."""

    def test_wall_entry_zeroes_pinned_variation(self, params):
        """Entering x = 0 while the flow pushes into it kills v[0]."""
        y = _state((1e-12, 0.3, 0.2), xr=0.65)
        S = saltation_matrix(y, Domain.INTERIOR, Domain.WALL_X, Grasper.OPEN, params)
        assert np.all(S[0, :] == 0.0)
        np.testing.assert_array_equal(S[1:, 1:], np.eye(5))

    def test_release_is_identity(self, params):
        y = _state((0.0, 0.3, 0.2))
        S = saltation_matrix(y, Domain.WALL_X, Domain.INTERIOR, Grasper.OPEN, params)
        np.testing.assert_array_equal(S, np.eye(6))

    def test_tangent_flow_raises(self):
        """A flow with no normal component has no saltation matrix."""
        params = ModelParams(mu=0.0)
        y = _state((0.3, 0.0, 0.2), xr=params.s2)
        with pytest.raises(TransitionError):
            saltation_matrix(y, Domain.INTERIOR, Domain.WALL_Y, Grasper.OPEN, params)

    def test_exit_jump_columns(self):
        J = exit_jump(Domain.EDGE_YZ)
        assert np.all(J[:, 1] == 0.0) and np.all(J[:, 2] == 0.0)
        np.testing.assert_array_equal(J[:, [0, 3, 4, 5]], np.eye(6)[:, [0, 3, 4, 5]])

    def test_wall_round_trip_on_tangent_space(self):
        """Entry then exit restores any variation lying in the wall."""
        rng = np.random.default_rng(7)
        pair = wall_jump_pair(Domain.WALL_Z)
        for _ in range(10):
            v = rng.normal(size=6)
            v[2] = 0.0
            np.testing.assert_allclose(pair.round_trip(v), v, atol=1e-12)


class TestGraspSwitchJump:
    """Tests for the grasper threshold jump pair."""

    def test_inverse_is_saltation_transpose(self, params, near_threshold):
        pair = grasp_switch_jump(
            near_threshold, Domain.INTERIOR, Grasper.CLOSED, params, GrasperGeometry()
        )
        np.testing.assert_allclose(pair.inverse, pair.saltation.T, atol=1e-10)

    def test_saltation_maps_field(self, params, near_threshold):
        """S carries the pre-switch field onto the post-switch field."""
        from feedcube.dynamics import physical_field

        pair = grasp_switch_jump(
            near_threshold, Domain.INTERIOR, Grasper.CLOSED, params, GrasperGeometry()
        )
        f_minus = physical_field(near_threshold, Domain.INTERIOR, Grasper.CLOSED, params)[:6]
        f_plus = physical_field(near_threshold, Domain.INTERIOR, Grasper.OPEN, params)[:6]
        np.testing.assert_allclose(pair.saltation @ f_minus, f_plus, atol=1e-10)

    def test_round_trip_any_vector(self, params, near_threshold):
        rng = np.random.default_rng(11)
        pair = grasp_switch_jump(
            near_threshold, Domain.INTERIOR, Grasper.OPEN, params, GrasperGeometry()
        )
        for _ in range(10):
            v = rng.normal(size=6)
            np.testing.assert_allclose(pair.round_trip(v), v, atol=1e-9)

    def test_singular_raises(self):
        """Flow tangent to the surface gives a singular jump."""
        params = ModelParams(mu=0.0)
        geometry = GrasperGeometry(weight_y=1.0, weight_z=0.0, threshold=0.0)
        y = _state((0.3, 0.0, 0.2), xr=params.s2)
        with pytest.raises(TransitionError):
            grasp_switch_jump(y, Domain.WALL_Y, Grasper.OPEN, params, geometry)

    def test_ill_conditioned_warning(self, params, near_threshold, caplog):
        with caplog.at_level(logging.WARNING, logger="feedcube.transitions"):
            grasp_switch_jump(
                near_threshold, Domain.INTERIOR, Grasper.CLOSED, params,
                GrasperGeometry(), condition_warn=0.0,
            )
        assert "Ill-conditioned" in caplog.text


class TestApplyTransition:
    """Tests for recording geometric transitions."""

    def test_wall_entry(self, params):
        log = TransitionLog()
        y = _state((1e-12, 0.3, 0.2), xr=0.65)
        y_new = apply_transition(log, 1.5, y, Domain.INTERIOR, Domain.WALL_X, Grasper.OPEN, params)

        assert y_new[0] == 0.0
        assert y_new[8] == 0.0
        np.testing.assert_array_equal(y_new[9:], y[9:])
        assert len(log.entries) == 1
        assert log.entries[0].domain == Domain.WALL_X
        assert log.entries[0].previous == Domain.INTERIOR
        assert log.exits == []
        assert log.x_wall_enter == [1.5]

    def test_wall_release(self, params):
        log = TransitionLog()
        y = _state((0.3, 0.0, 0.0))
        y_new = apply_transition(log, 2.0, y, Domain.EDGE_YZ, Domain.WALL_Y, Grasper.OPEN, params)

        assert y_new[1] == 0.0
        assert len(log.exits) == 1
        assert log.exits[0].domain == Domain.EDGE_YZ
        np.testing.assert_array_equal(log.exits[0].inverse_jump, exit_jump(Domain.EDGE_YZ))
        assert log.z_wall_exit == [2.0]
        assert log.x_wall_exit == []

    def test_clear(self, params):
        log = TransitionLog()
        y = _state((1e-12, 0.3, 0.2), xr=0.65)
        apply_transition(log, 1.0, y, Domain.INTERIOR, Domain.WALL_X, Grasper.OPEN, params)
        log.clear()
        assert log.summary() == {
            "entries": 0,
            "exits": 0,
            "grasper_closes": 0,
            "grasper_opens": 0,
            "x_wall_entries": 0,
            "z_wall_entries": 0,
        }


class TestResolveGraspSwitch:
    """Tests for passing through the GRASP_SWITCH pseudo-domain."""

    def test_flip_and_record(self, params, near_threshold):
        log = TransitionLog()
        y_new, grasper = resolve_grasp_switch(
            log, 3.0, near_threshold, Domain.INTERIOR, Grasper.CLOSED, params, GrasperGeometry()
        )
        assert grasper == Grasper.OPEN
        np.testing.assert_array_equal(y_new[:8], near_threshold[:8])
        assert log.entries[0].domain == Domain.GRASP_SWITCH
        assert log.exits[0].domain == Domain.GRASP_SWITCH
        assert log.switches[0].grasper == Grasper.OPEN
        np.testing.assert_array_equal(log.open_times, [3.0])

    def test_double_switch_restores(self, params, near_threshold):
        """Two switches at the same point restore the grasper and the variation."""
        log = TransitionLog()
        geometry = GrasperGeometry()
        y1, g1 = resolve_grasp_switch(
            log, 3.0, near_threshold, Domain.INTERIOR, Grasper.CLOSED, params, geometry
        )
        y2, g2 = resolve_grasp_switch(log, 3.0, y1, Domain.INTERIOR, g1, params, geometry)

        assert g2 == Grasper.CLOSED
        np.testing.assert_allclose(y2, near_threshold, atol=1e-12)
        assert [s.grasper for s in log.switches] == [Grasper.OPEN, Grasper.CLOSED]
        assert len(log.entries) == 2
        assert len(log.exits) == 2
