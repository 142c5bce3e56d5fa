"""
Tests for event construction, arming and selection.
"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add src to path for development testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from feedcube.config import GrasperGeometry, ModelParams
from feedcube.domains import Domain, Grasper
from feedcube.dynamics import physical_field
from feedcube.events import EVENT_SETS, build_events, select_event


@pytest.fixture
def params():
    return ModelParams()


def _state(head, xr=0.6):
    y = np.zeros(14)
    y[:3] = head
    y[3:8] = [0.7, 0.2, xr, 0.0, 0.01]
    return y


def _events(y, domain, grasper, params, geometry=None):
    geometry = geometry if geometry is not None else GrasperGeometry()
    f0 = physical_field(y, domain, grasper, params)
    return build_events(domain, grasper, params, geometry, y, f0, tolerance=1e-9, offset=1e-12)


class TestBuildEvents:
    """Tests for build_events."""

    def test_protocol_attributes(self, params):
        y = _state((0.3, 0.1, 0.1))
        events = _events(y, Domain.INTERIOR, Grasper.OPEN, params)
        assert len(events) == len(EVENT_SETS[Domain.INTERIOR])
        assert all(e.terminal for e in events)
        assert [e.direction for e in events] == [-1, -1, -1, 0]

    def test_unarmed_values(self, params):
        """Away from every surface the events are the raw root functions."""
        y = _state((0.3, 0.1, 0.15))
        events = _events(y, Domain.INTERIOR, Grasper.OPEN, params)
        assert events[0](0.0, y) == 0.3
        assert events[1](0.0, y) == 0.1
        assert events[3](0.0, y) == pytest.approx(0.1 + 0.15 - 0.5)

    def test_falling_event_armed_upward(self, params):
        """A coordinate starting at zero cannot fire at the segment start."""
        y = _state((5e-10, 0.3, 0.2))
        events = _events(y, Domain.INTERIOR, Grasper.OPEN, params)
        assert events[0](0.0, y) == pytest.approx(5e-10 + 1e-12, abs=1e-20)
        assert events[0](0.0, y) > 0

    def test_release_event_armed_downward(self, params):
        """A release whose derivative starts at zero needs a strict rise."""
        params = ModelParams(mu=0.0)
        y = _state((0.0, 0.3, 0.2), xr=params.s1)
        events = _events(y, Domain.WALL_X, Grasper.OPEN, params)
        assert events[0](0.0, y) == -1e-12

    @pytest.mark.parametrize("grasper", [Grasper.OPEN, Grasper.CLOSED])
    def test_threshold_armed_along_flow(self, params, grasper):
        """A two-sided event on its surface is shifted to the side the flow heads to."""
        y = _state((0.01, 0.3, 0.2))
        f0 = physical_field(y, Domain.INTERIOR, grasper, params)
        heading_up = f0[1] + f0[2] > 0
        events = _events(y, Domain.INTERIOR, grasper, params)
        value = events[3](0.0, y)
        assert value == pytest.approx(1e-12 if heading_up else -1e-12, abs=1e-15)


class TestSelectEvent:
    """Tests for select_event."""

    def test_nothing_fired(self):
        assert select_event([[], [], []], [[], [], []]) is None

    def test_latest_wins(self):
        y_a, y_b = np.zeros(14), np.ones(14)
        hit = select_event([[0.4], [0.7], []], [[y_a], [y_b], []])
        assert hit[0] == 1
        assert hit[1] == 0.7
        np.testing.assert_array_equal(hit[2], y_b)

    def test_tie_goes_to_highest_index(self):
        y = np.zeros(14)
        hit = select_event([[1.0], [], [1.0], [0.5]], [[y], [], [y], [y]])
        assert hit[0] == 2
