"""
Phase-response curve from the backward adjoint equation.

    z' = -J(t)^T z

is integrated from the end of a solved trajectory back to its start. J(t) is
the reduced Jacobian at the linearly interpolated state, in the domain the
forward solve recorded for the last sample at or before t. At every recorded exit the adjoint is remapped z <- z J_inv^T with
that exit's inverse jump matrix, latest exit first.
"""

from dataclasses import dataclass
import logging
from typing import Optional, Sequence

import numpy as np
from numpy.typing import NDArray
import pandas as pd
from scipy.integrate import solve_ivp
from scipy.interpolate import interp1d

from .config import as_numeric_array
from .domains import Domain
from .dynamics import N_PHYS, N_VAR, jacobian
from .errors import ConfigError, SolverError

logger = logging.getLogger(__name__)

DEFAULT_Z0 = (1.0, 0.0, 0.0, 0.0, 0.0, 0.0)


@dataclass(frozen=True)
class PhaseResponse:
    """Adjoint solution, with times in descending order."""
    t: NDArray[np.float64]
    z: NDArray[np.float64]

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.z, columns=[f"z{i}" for i in range(N_VAR)])
        df.insert(0, "t", self.t)
        return df


def _unique_samples(t: NDArray[np.float64], y: NDArray[np.float64]):
    """Drop repeated times, keeping the state recorded after each transition."""
    keep = np.append(np.diff(t) > 0, True)
    return t[keep], y[keep]


def _domain_lookup(t: NDArray[np.float64], domains: NDArray[np.int8]):
    """
    Recorded domain as a function of time.

    `t` must be strictly increasing. A query between samples gets the domain
    of the last sample at or before it; queries outside the range are clipped
    to the first or last sample.
    """
    last = t.size - 1

    def domain_at(time: float) -> Domain:
        k = int(np.searchsorted(t, time, side="right")) - 1
        return Domain(int(domains[min(max(k, 0), last)]))

    return domain_at


def phase_response(model, z0: Optional[Sequence[float]] = None) -> PhaseResponse:
    """
    Integrate the adjoint equation backward over a solved model.

    Parameters
    ----------
    model : HybridModel
        Model whose latest solve supplies the trajectory and exit records.
    z0 : array_like of shape (6,), optional
        Adjoint value at the final time. Defaults to (1, 0, 0, 0, 0, 0).

    Returns
    -------
    PhaseResponse

    Raises
    ------
    NotSolvedError
        If the model has not been solved.
    """
    t_all = model.t
    z = as_numeric_array("z0", DEFAULT_Z0 if z0 is None else z0)
    if z.shape != (N_VAR,):
        raise ConfigError(f"z0 must have {N_VAR} entries, got {z.size}")

    t_u, y_u = _unique_samples(t_all, model.y[:, :N_PHYS])
    _, dom_u = _unique_samples(t_all, model.domains)
    if t_u.size < 2:
        raise SolverError("Trajectory has too few distinct samples for the adjoint pass")

    state_at = interp1d(
        t_u, y_u, axis=0, assume_sorted=True,
        bounds_error=False, fill_value=(y_u[0], y_u[-1]),
    )
    domain_at = _domain_lookup(t_u, dom_u)
    params = model.params
    solver = model.solver

    def rhs(t, zz):
        y = state_at(t)
        J = jacobian(y, domain_at(t), params)
        return -J.T @ zz

    def integrate_back(t_from: float, t_to: float, z_start):
        sol = solve_ivp(
            rhs, (t_from, t_to), z_start,
            method=solver.method, rtol=solver.rtol, atol=solver.atol,
            max_step=solver.max_step,
        )
        if sol.status == -1:
            raise SolverError(f"Adjoint integration failed at t={t_from:.9g}: {sol.message}")
        return sol.t, sol.y.T

    t_start, t_final = float(t_u[0]), float(t_u[-1])
    exits = sorted(model.transitions.exits, key=lambda r: r.t)

    times, values = [], []
    t_now = t_final
    for record in reversed(exits):
        if record.t < t_now:
            seg_t, seg_z = integrate_back(t_now, record.t, z)
            times.append(seg_t)
            values.append(seg_z)
            z = seg_z[-1]
            t_now = record.t
        z = z @ record.inverse_jump.T

    if t_now > t_start:
        seg_t, seg_z = integrate_back(t_now, t_start, z)
        times.append(seg_t)
        values.append(seg_z)

    logger.debug(f"Adjoint pass over {len(exits)} exits in {len(times)} intervals")
    return PhaseResponse(t=np.concatenate(times), z=np.vstack(values))
