"""
Flow-regime classification for the hybrid feeding model.

The first three physical coordinates (x, y, z) = (a0, a1, a2) live in the
non-negative octant. Which of them are pinned at exactly zero selects one of
seven geometric domains; an eighth pseudo-domain marks the instantaneous
open/close switch of the grasper.
"""

from enum import IntEnum

import numpy as np
from numpy.typing import NDArray

from .config import GrasperGeometry


class Domain(IntEnum):
    """
    Enumeration of flow domains.

    Integer values are used for array storage and the transition log.
    """
    INTERIOR = 0
    WALL_X = 1
    WALL_Y = 2
    WALL_Z = 3
    GRASP_SWITCH = 4
    EDGE_XY = 5
    EDGE_XZ = 6
    EDGE_YZ = 7


class Grasper(IntEnum):
    """Grasper status."""
    OPEN = 0
    CLOSED = 1


# Coordinates held at zero in each domain
PINNED: dict[Domain, tuple[int, ...]] = {
    Domain.INTERIOR: (),
    Domain.WALL_X: (0,),
    Domain.WALL_Y: (1,),
    Domain.WALL_Z: (2,),
    Domain.GRASP_SWITCH: (),
    Domain.EDGE_XY: (0, 1),
    Domain.EDGE_XZ: (0, 2),
    Domain.EDGE_YZ: (1, 2),
}

_BY_PINNED = {pinned: dom for dom, pinned in PINNED.items() if dom != Domain.GRASP_SWITCH}

# Destination domain for each root index of each domain's event set
TRANSITIONS: dict[Domain, tuple[Domain, ...]] = {
    Domain.INTERIOR: (Domain.WALL_X, Domain.WALL_Y, Domain.WALL_Z, Domain.GRASP_SWITCH),
    Domain.WALL_X: (Domain.INTERIOR, Domain.EDGE_XY, Domain.EDGE_XZ, Domain.GRASP_SWITCH),
    Domain.WALL_Y: (Domain.INTERIOR, Domain.EDGE_XY, Domain.EDGE_YZ, Domain.GRASP_SWITCH),
    Domain.WALL_Z: (Domain.INTERIOR, Domain.EDGE_XZ, Domain.EDGE_YZ, Domain.GRASP_SWITCH),
    Domain.EDGE_XY: (Domain.WALL_Y, Domain.WALL_X, Domain.GRASP_SWITCH),
    Domain.EDGE_XZ: (Domain.WALL_Z, Domain.WALL_X, Domain.GRASP_SWITCH),
    Domain.EDGE_YZ: (Domain.WALL_Z, Domain.WALL_Y, Domain.GRASP_SWITCH),
}

DOMAIN_NAMES = {
    Domain.INTERIOR: "interior",
    Domain.WALL_X: "wall_x",
    Domain.WALL_Y: "wall_y",
    Domain.WALL_Z: "wall_z",
    Domain.GRASP_SWITCH: "grasp_switch",
    Domain.EDGE_XY: "edge_xy",
    Domain.EDGE_XZ: "edge_xz",
    Domain.EDGE_YZ: "edge_yz",
}


def classify_domain(x: NDArray[np.float64]) -> Domain:
    """
    Classify a physical state by which of a0, a1, a2 are exactly zero.

    Parameters
    ----------
    x : array_like
        State whose first three entries are the activities.

    Returns
    -------
    domain : Domain
        Geometric domain (never GRASP_SWITCH).

    Raises
    ------
    ValueError
        If all three activities are zero or any is negative.
    """
    head = np.asarray(x, dtype=np.float64)[:3]
    if np.any(head < 0):
        raise ValueError(f"Activities must be non-negative, got {head.tolist()}")

    pinned = tuple(int(i) for i in np.flatnonzero(head == 0.0))
    if len(pinned) == 3:
        raise ValueError("State with a0 = a1 = a2 = 0 is outside every domain")
    return _BY_PINNED[pinned]


def classify_grasper(x: NDArray[np.float64], geometry: GrasperGeometry) -> Grasper:
    """Grasper status implied by a state: closed strictly above the threshold."""
    if geometry.value(x[1], x[2]) > 0:
        return Grasper.CLOSED
    return Grasper.OPEN


def newly_pinned(src: Domain, dest: Domain) -> tuple[int, ...]:
    """Coordinates pinned in `dest` that were free in `src`."""
    return tuple(i for i in PINNED[dest] if i not in PINNED[src])


def released(src: Domain, dest: Domain) -> tuple[int, ...]:
    """Coordinates pinned in `src` that are free in `dest`."""
    return tuple(i for i in PINNED[src] if i not in PINNED[dest])


def domain_to_string(domain: Domain) -> str:
    """
    Convert domain to human-readable string.

    Parameters
    ----------
    domain : Domain
        Domain to convert.

    Returns
    -------
    name : str
        Human-readable domain name.
    """
    return DOMAIN_NAMES.get(domain, "unknown")
