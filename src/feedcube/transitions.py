"""
Transition engine: saltation and jump matrices, constraint clamping and the
transition log consumed by the adjoint pass.

The variational state is stored as a row vector v, so a 6x6 matrix S acting
on it is applied as v <- v S^T.
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from .config import GrasperGeometry, ModelParams
from .domains import (
    Domain,
    Grasper,
    PINNED,
    domain_to_string,
    newly_pinned,
    released,
)
from .dynamics import N_PHYS, N_VAR, physical_field
from .errors import TransitionError

logger = logging.getLogger(__name__)

X_AXIS = 0
Z_AXIS = 2


@dataclass(frozen=True)
class EntryRecord:
    """Domain change and the saltation matrix applied on entry."""
    t: float
    domain: Domain
    previous: Domain
    saltation: NDArray[np.float64]


@dataclass(frozen=True)
class ExitRecord:
    """Release of a constraint (or grasp switch) and its inverse jump matrix."""
    t: float
    domain: Domain
    inverse_jump: NDArray[np.float64]


@dataclass(frozen=True)
class GrasperSwitch:
    """A grasper flip: time, full 14-d state, and the status after the flip."""
    t: float
    state: NDArray[np.float64]
    grasper: Grasper


@dataclass
class TransitionLog:
    """
    Append-only history of one solve.

    Cleared at the start of every solve and read by the adjoint pass.
    """
    entries: list[EntryRecord] = field(default_factory=list)
    exits: list[ExitRecord] = field(default_factory=list)
    switches: list[GrasperSwitch] = field(default_factory=list)
    x_wall_enter: list[float] = field(default_factory=list)
    x_wall_exit: list[float] = field(default_factory=list)
    z_wall_enter: list[float] = field(default_factory=list)
    z_wall_exit: list[float] = field(default_factory=list)

    def clear(self) -> None:
        for records in (
            self.entries, self.exits, self.switches,
            self.x_wall_enter, self.x_wall_exit,
            self.z_wall_enter, self.z_wall_exit,
        ):
            records.clear()

    @property
    def exit_times(self) -> NDArray[np.float64]:
        return np.array([r.t for r in self.exits], dtype=np.float64)

    @property
    def close_times(self) -> NDArray[np.float64]:
        return np.array(
            [s.t for s in self.switches if s.grasper == Grasper.CLOSED], dtype=np.float64
        )

    @property
    def open_times(self) -> NDArray[np.float64]:
        return np.array(
            [s.t for s in self.switches if s.grasper == Grasper.OPEN], dtype=np.float64
        )

    def summary(self) -> dict:
        """Counts of each record type."""
        return {
            "entries": len(self.entries),
            "exits": len(self.exits),
            "grasper_closes": int(self.close_times.size),
            "grasper_opens": int(self.open_times.size),
            "x_wall_entries": len(self.x_wall_enter),
            "z_wall_entries": len(self.z_wall_enter),
        }


def clamp(y: NDArray[np.float64], domain: Domain) -> NDArray[np.float64]:
    """Return a copy of y with the domain's pinned coordinates set to exactly 0.0."""
    out = np.array(y, dtype=np.float64)
    for i in PINNED[domain]:
        out[i] = 0.0
    return out


def apply_jump(y: NDArray[np.float64], matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return a copy of y with the variational half mapped v <- v matrix^T."""
    out = np.array(y, dtype=np.float64)
    out[N_PHYS:] = out[N_PHYS:] @ matrix.T
    return out


def saltation_matrix(
    y: NDArray[np.float64],
    src: Domain,
    dest: Domain,
    grasper: Grasper,
    params: ModelParams
) -> NDArray[np.float64]:
    """
    Saltation matrix for a geometric domain change.

    S = I + (f_dest - f_src) n^T / (n . f_src), where n sums the unit
    normals of the coordinates pinned by the transition. Releasing a
    coordinate pins nothing and gives the identity.

    Parameters
    ----------
    y : ndarray
        State at the event.
    src, dest : Domain
        Domains before and after the event.
    grasper : Grasper
        Grasper status (unchanged by geometric transitions).
    params : ModelParams
        Model constants.

    Returns
    -------
    S : ndarray of shape (6, 6)
    """
    pinned = newly_pinned(src, dest)
    if not pinned:
        return np.eye(N_VAR)

    n = np.zeros(N_VAR)
    n[list(pinned)] = 1.0
    f_src = physical_field(y, src, grasper, params)[:N_VAR]
    f_dest = physical_field(y, dest, grasper, params)[:N_VAR]

    denom = n @ f_src
    if denom == 0.0:
        raise TransitionError(
            f"Flow is tangent to the wall entering {domain_to_string(dest)}; "
            f"saltation matrix is undefined"
        )
    return np.eye(N_VAR) + np.outer(f_dest - f_src, n) / denom


def exit_jump(src: Domain) -> NDArray[np.float64]:
    """Inverse jump matrix when leaving `src`: identity with pinned columns zeroed."""
    J = np.eye(N_VAR)
    J[:, list(PINNED[src])] = 0.0
    return J


def wall_jump_pair(domain: Domain) -> "JumpPair":
    """
    Jump pair of a wall or edge: identity on entry, projection on exit.

    The round trip is the identity on the wall's tangent space, where the
    entry saltation leaves the variational state.
    """
    return JumpPair(jump=np.eye(N_VAR), inverse=exit_jump(domain))


@dataclass(frozen=True)
class JumpPair:
    """
    Entry jump and recorded inverse jump for one crossing.

    `saltation` is the matrix applied to the variational state on entry,
    when it depends on the crossing point.
    """
    jump: NDArray[np.float64]
    inverse: NDArray[np.float64]
    saltation: Optional[NDArray[np.float64]] = None
    condition: float = 1.0

    def round_trip(self, v: NDArray[np.float64]) -> NDArray[np.float64]:
        """Map v forward through the jump and back: v J^T J_inv^T."""
        return np.asarray(v) @ self.jump.T @ self.inverse.T


def grasp_switch_jump(
    y: NDArray[np.float64],
    domain: Domain,
    grasper: Grasper,
    params: ModelParams,
    geometry: GrasperGeometry,
    condition_warn: float = 1e8
) -> JumpPair:
    """
    Saltation and inverse jump for a crossing of the threshold surface.

    With f- and f+ the physical derivatives before and after the flip,
    the saltation is S = I + (f+ - f-) n^T / (n . f-). The jump M solves
    A M = B with A = [f+; e1; e4; e5; e6; t] and B = [f-; e1; e4; e5; e6; t],
    t the in-plane tangent of the surface; the recorded inverse is M^-1.

    Parameters
    ----------
    y : ndarray
        State at the crossing.
    domain : Domain
        Geometric domain active at the crossing.
    grasper : Grasper
        Grasper status before the flip.
    params : ModelParams
        Model constants.
    geometry : GrasperGeometry
        Threshold surface.
    condition_warn : float
        Condition numbers above this are logged as warnings.

    Returns
    -------
    JumpPair
        `jump` is M, `inverse` is M^-1 and `saltation` is S. M^-1
        equals S^T whenever both are defined.

    Raises
    ------
    TransitionError
        If the flow is tangent to the surface and the jump is singular.
    """
    flipped = Grasper(1 - int(grasper))
    f_minus = physical_field(y, domain, grasper, params)[:N_VAR]
    f_plus = physical_field(y, domain, flipped, params)[:N_VAR]
    n = geometry.normal

    denom = n @ f_minus
    if denom == 0.0:
        raise TransitionError("Flow is tangent to the grasper threshold surface")
    S = np.eye(N_VAR) + np.outer(f_plus - f_minus, n) / denom

    eye = np.eye(N_VAR)
    rows = [eye[0], eye[3], eye[4], eye[5], geometry.tangent]
    A = np.vstack([f_plus] + rows)
    B = np.vstack([f_minus] + rows)

    cond = max(np.linalg.cond(A), np.linalg.cond(B))
    if not np.isfinite(cond) or cond * np.finfo(np.float64).eps >= 1.0:
        raise TransitionError(
            f"Singular grasp-switch jump at y={y[1]:.6g}, z={y[2]:.6g} "
            f"(condition number {cond:.3g})"
        )
    if cond > condition_warn:
        logger.warning(f"Ill-conditioned grasp-switch jump: condition number {cond:.3g}")

    M = np.linalg.solve(A, B)
    return JumpPair(jump=M, inverse=np.linalg.inv(M), saltation=S, condition=float(cond))


def apply_transition(
    log: TransitionLog,
    t: float,
    y: NDArray[np.float64],
    src: Domain,
    dest: Domain,
    grasper: Grasper,
    params: ModelParams
) -> NDArray[np.float64]:
    """
    Carry out a geometric domain change and record it.

    Applies the saltation to the variational half, snaps the destination's
    pinned coordinates to zero, and appends entry, exit and hard-wall
    records.

    Returns
    -------
    y_new : ndarray
        State to start the next segment from.
    """
    S = saltation_matrix(y, src, dest, grasper, params)
    y_new = clamp(apply_jump(y, S), dest)

    log.entries.append(EntryRecord(t=t, domain=dest, previous=src, saltation=S))

    freed = released(src, dest)
    if freed:
        log.exits.append(ExitRecord(t=t, domain=src, inverse_jump=wall_jump_pair(src).inverse))

    pinned = newly_pinned(src, dest)
    if X_AXIS in pinned:
        log.x_wall_enter.append(t)
    if X_AXIS in freed:
        log.x_wall_exit.append(t)
    if Z_AXIS in pinned:
        log.z_wall_enter.append(t)
    if Z_AXIS in freed:
        log.z_wall_exit.append(t)

    logger.debug(
        f"t={t:.9f}: {domain_to_string(src)} -> {domain_to_string(dest)}"
    )
    return y_new


def resolve_grasp_switch(
    log: TransitionLog,
    t: float,
    y: NDArray[np.float64],
    domain: Domain,
    grasper: Grasper,
    params: ModelParams,
    geometry: GrasperGeometry,
    condition_warn: float = 1e8
) -> tuple[NDArray[np.float64], Grasper]:
    """
    Pass through the GRASP_SWITCH pseudo-domain.

    Applies the saltation, records the entry and the inverse jump, and
    flips the grasper. The geometric domain is unchanged.

    Returns
    -------
    y_new : ndarray
        State after the saltation.
    grasper : Grasper
        Flipped grasper status.
    """
    pair = grasp_switch_jump(y, domain, grasper, params, geometry, condition_warn)
    y_new = apply_jump(y, pair.saltation)
    flipped = Grasper(1 - int(grasper))

    log.entries.append(
        EntryRecord(t=t, domain=Domain.GRASP_SWITCH, previous=domain, saltation=pair.saltation)
    )
    log.exits.append(
        ExitRecord(t=t, domain=Domain.GRASP_SWITCH, inverse_jump=pair.inverse)
    )
    log.switches.append(GrasperSwitch(t=t, state=y_new.copy(), grasper=flipped))

    logger.debug(
        f"t={t:.9f}: grasper {'closed' if flipped == Grasper.CLOSED else 'opened'} "
        f"in {domain_to_string(domain)}"
    )
    return y_new, flipped
