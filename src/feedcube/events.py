"""
Root functions signalling the next change of flow regime.

Each domain owns an ordered event set; the position of an event in its set
is the root index used by the TRANSITIONS table. Events follow the
scipy.integrate.solve_ivp protocol: callables g(t, y) carrying `terminal`
and `direction` attributes.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from numpy.typing import NDArray

from .config import GrasperGeometry, ModelParams
from .domains import Domain, Grasper, TRANSITIONS
from .dynamics import unconstrained_field

# Step used to test which side of a surface the flow is heading to
ARMING_STEP = 1e-8

FALLING = -1
RISING = 1
EITHER = 0


@dataclass(frozen=True)
class EventSpec:
    """
    Declarative description of one root function.

    kind
        "coordinate": g = y[index], the coordinate reaching its wall.
        "release": g = unconstrained derivative of pinned coordinate `index`.
        "threshold": g = grasper threshold function.
    """
    kind: str
    index: Optional[int]
    direction: int

    @property
    def name(self) -> str:
        if self.kind == "threshold":
            return "threshold"
        axis = "xyz"[self.index]
        return f"{axis}_down" if self.kind == "coordinate" else f"{axis}_release"


def _falls(i: int) -> EventSpec:
    return EventSpec("coordinate", i, FALLING)


def _releases(i: int) -> EventSpec:
    return EventSpec("release", i, RISING)


_THRESHOLD = EventSpec("threshold", None, EITHER)

EVENT_SETS: dict[Domain, tuple[EventSpec, ...]] = {
    Domain.INTERIOR: (_falls(0), _falls(1), _falls(2), _THRESHOLD),
    Domain.WALL_X: (_releases(0), _falls(1), _falls(2), _THRESHOLD),
    Domain.WALL_Y: (_releases(1), _falls(0), _falls(2), _THRESHOLD),
    Domain.WALL_Z: (_releases(2), _falls(0), _falls(1), _THRESHOLD),
    Domain.EDGE_XY: (_releases(0), _releases(1), _THRESHOLD),
    Domain.EDGE_XZ: (_releases(0), _releases(2), _THRESHOLD),
    Domain.EDGE_YZ: (_releases(1), _releases(2), _THRESHOLD),
}

for _domain, _specs in EVENT_SETS.items():
    if len(_specs) != len(TRANSITIONS[_domain]):
        raise RuntimeError(
            f"{_domain.name} has {len(_specs)} event functions but "
            f"{len(TRANSITIONS[_domain])} destinations"
        )
del _domain, _specs


def event_value(
    spec: EventSpec,
    y: NDArray[np.float64],
    domain: Domain,
    grasper: Grasper,
    params: ModelParams,
    geometry: GrasperGeometry
) -> float:
    """Evaluate one root function at a state."""
    if spec.kind == "coordinate":
        return float(y[spec.index])
    if spec.kind == "release":
        return float(unconstrained_field(y, domain, grasper, params)[spec.index])
    return float(geometry.value(y[1], y[2]))


def _make_event(fn: Callable, direction: int) -> Callable:
    fn.terminal = True
    fn.direction = direction
    return fn


def build_events(
    domain: Domain,
    grasper: Grasper,
    params: ModelParams,
    geometry: GrasperGeometry,
    y0: NDArray[np.float64],
    f0: NDArray[np.float64],
    tolerance: float = 1e-9,
    offset: float = 1e-12
) -> list[Callable]:
    """
    Build the armed event functions for one integration segment.

    An event whose value at the segment start lies within `tolerance` of
    zero is shifted by `offset` toward the side the flow is leaving to, so
    the surface the segment starts on is not reported again at t0.

    Parameters
    ----------
    domain : Domain
        Current geometric domain.
    grasper : Grasper
        Current grasper status.
    params : ModelParams
        Model constants.
    geometry : GrasperGeometry
        Threshold surface.
    y0 : ndarray
        State at the segment start.
    f0 : ndarray
        Physical derivative at the segment start, used to test the
        direction of travel for two-sided events.
    tolerance : float
        Band around zero treated as "on the surface".
    offset : float
        Shift applied to events starting on their surface.

    Returns
    -------
    events : list of callables
        Ordered as EVENT_SETS[domain], ready for solve_ivp.
    """
    events = []
    for spec in EVENT_SETS[domain]:
        g0 = event_value(spec, y0, domain, grasper, params, geometry)
        shift = 0.0
        if abs(g0) < tolerance:
            if spec.direction == FALLING:
                shift = offset
            elif spec.direction == RISING:
                shift = -offset
            else:
                ahead = np.array(y0, dtype=np.float64)
                ahead[:len(f0)] += ARMING_STEP * np.asarray(f0)
                g1 = event_value(spec, ahead, domain, grasper, params, geometry)
                shift = offset if g1 >= g0 else -offset

        def fn(t, y, spec=spec, shift=shift):
            return event_value(spec, y, domain, grasper, params, geometry) + shift

        events.append(_make_event(fn, spec.direction))
    return events


def select_event(t_events: list, y_events: list):
    """
    Pick the event that ended a segment.

    The latest event time wins; ties go to the highest root index.

    Returns
    -------
    selection : tuple of (int, float, ndarray) or None
        Root index, event time and state, or None if nothing fired.
    """
    best = None
    for index, (times, states) in enumerate(zip(t_events, y_events)):
        if len(times) == 0:
            continue
        t_hit = float(times[-1])
        if best is None or t_hit >= best[1]:
            best = (index, t_hit, np.array(states[-1], dtype=np.float64))
    return best
