"""
Vector field of the hybrid feeding model.

Physical half (8 components):
    a_i' = (a_i (1 - a_i - γ a_{i+1}) + μ + ε_i (xr - s_i) σ_i) / τ_a
    u0'  = ((a0 + a1) u_max - u0) / τ_m
    u1'  = (a2 u_max - u1) / τ_m
    xr'  = (F_musc(u0, u1, xr) + F) / b_r      (grasper closed)
         =  F_musc(u0, u1, xr) / b_r           (grasper open)
    S'   = xr' when closed, 0 when open
    F'   = 0

Variational half (6 components):
    v' = J_domain(x) v + h

Domain and grasper status are always explicit arguments so that event
functions and jump construction can evaluate hypothetical branches.
"""

from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np
from numpy.typing import NDArray

from .config import ModelParams, as_numeric_array
from .domains import Domain, Grasper, PINNED
from .errors import ConfigError

PHI_SCALE = 2.598076211353316  # 3*sqrt(3)/2, unit peak of the length-tension curve

N_PHYS = 8
N_VAR = 6
N_STATE = N_PHYS + N_VAR


def phi(x):
    """Cubic length-tension curve, odd with peak 1 at x = 1/sqrt(3)."""
    return -PHI_SCALE * x * (x**2 - 1)


def phiprime(x):
    """Derivative of the length-tension curve."""
    return -PHI_SCALE * (3 * x**2 - 1)


def muscle_force(u0, u1, xr, params: ModelParams):
    """
    Total force applied by the two muscles.

    Parameters
    ----------
    u0, u1 : float or ndarray
        Muscle activations.
    xr : float or ndarray
        Grasper position.
    params : ModelParams
        Model constants.

    Returns
    -------
    force : float or ndarray
    """
    return (
        params.k0 * phi((params.c0 - xr) / params.w0) * u0
        + params.k1 * phi((params.c1 - xr) / params.w1) * u1
    )


def muscle_force_slope(u0, u1, xr, params: ModelParams):
    """Partial derivative of muscle_force with respect to xr."""
    return (
        -params.k0 * phiprime((params.c0 - xr) / params.w0) * u0 / params.w0
        - params.k1 * phiprime((params.c1 - xr) / params.w1) * u1 / params.w1
    )


@dataclass(frozen=True)
class Perturbation:
    """
    Sustained perturbation driving the variational half.

    kind
        "none": homogeneous variational equation.
        "parameter": forcing 1/b_r on xr while the grasper is closed
            (sensitivity to the load force).
        "uniform": nu * f(x) plus the closed-phase forcing.
        "piecewise": nu_close * f(x) plus forcing while closed,
            nu_open * f(x) while open.
    """
    kind: Literal["none", "parameter", "uniform", "piecewise"] = "none"
    nu_close: float = 0.0
    nu_open: float = 0.0

    @classmethod
    def from_spec(cls, nu) -> "Perturbation":
        """
        Build from a user-facing spec.

        None or 0 gives "none"; "parameter" or an empty sequence gives
        "parameter"; a non-zero scalar gives "uniform"; a pair
        (nu_close, nu_open) gives "piecewise" unless both are zero.
        """
        if nu is None:
            return cls()
        if isinstance(nu, str):
            if nu == "parameter":
                return cls(kind="parameter")
            raise ConfigError(f"Unknown perturbation spec: {nu!r}")
        if isinstance(nu, (list, tuple, np.ndarray)) and len(nu) == 0:
            return cls(kind="parameter")

        arr = as_numeric_array("nu", nu).reshape(-1)
        if arr.size == 1:
            value = float(arr[0])
            if value == 0.0:
                return cls()
            return cls(kind="uniform", nu_close=value, nu_open=value)
        if arr.size == 2:
            nu_close, nu_open = float(arr[0]), float(arr[1])
            if nu_close == 0.0 and nu_open == 0.0:
                return cls()
            return cls(kind="piecewise", nu_close=nu_close, nu_open=nu_open)
        raise ConfigError(f"nu must be a scalar or a pair, got {arr.size} values")

    @property
    def is_sustained(self) -> bool:
        return self.kind != "none"

    def forcing(
        self,
        f_phys: NDArray[np.float64],
        grasper: Grasper,
        params: ModelParams
    ) -> NDArray[np.float64]:
        """
        Nonhomogeneous term h for the variational equation.

        Parameters
        ----------
        f_phys : ndarray of shape (6,)
            Constrained physical derivative at the current point.
        grasper : Grasper
            Grasper status.
        params : ModelParams
            Model constants.

        Returns
        -------
        h : ndarray of shape (6,)
        """
        h = np.zeros(N_VAR, dtype=np.float64)
        if self.kind == "none":
            return h

        closed = grasper == Grasper.CLOSED
        if self.kind == "uniform":
            h += self.nu_close * f_phys
        elif self.kind == "piecewise":
            h += (self.nu_close if closed else self.nu_open) * f_phys

        if closed:
            h[5] += 1.0 / params.br
        return h


NO_PERTURBATION = Perturbation()


def physical_field(
    y: NDArray[np.float64],
    domain: Domain,
    grasper: Grasper,
    params: ModelParams
) -> NDArray[np.float64]:
    """
    Derivative of the 8 physical components.

    On a wall or edge the derivative of each pinned coordinate is floored
    at zero.
    """
    a0, a1, a2, u0, u1, xr = y[0], y[1], y[2], y[3], y[4], y[5]
    force = y[7]
    tau_a, tau_m = params.tau_a, params.tau_m

    dx = np.empty(N_PHYS, dtype=np.float64)
    dx[0] = (a0 * (1 - a0 - params.gamma * a1) + params.mu
             + params.eps1 * (xr - params.s1) * params.sig1) / tau_a
    dx[1] = (a1 * (1 - a1 - params.gamma * a2) + params.mu
             + params.eps2 * (xr - params.s2) * params.sig2) / tau_a
    dx[2] = (a2 * (1 - a2 - params.gamma * a0) + params.mu
             + params.eps3 * (xr - params.s3) * params.sig3) / tau_a
    dx[3] = ((a0 + a1) * params.umax - u0) / tau_m
    dx[4] = (a2 * params.umax - u1) / tau_m

    if grasper == Grasper.CLOSED:
        dx[5] = (muscle_force(u0, u1, xr, params) + force) / params.br
        dx[6] = dx[5]
    else:
        dx[5] = muscle_force(u0, u1, xr, params) / params.br
        dx[6] = 0.0
    dx[7] = 0.0

    for i in PINNED[domain]:
        dx[i] = max(0.0, dx[i])
    return dx


def unconstrained_field(
    y: NDArray[np.float64],
    domain: Domain,
    grasper: Grasper,
    params: ModelParams
) -> NDArray[np.float64]:
    """
    Interior physical derivative at the state with the domain's pinned
    coordinates set to zero.

    Its pinned components say whether the flow would leave the wall.
    """
    at_wall = np.array(y[:N_PHYS], dtype=np.float64)
    at_wall[list(PINNED[domain])] = 0.0
    return physical_field(at_wall, Domain.INTERIOR, grasper, params)


def interior_jacobian(y: NDArray[np.float64], params: ModelParams) -> NDArray[np.float64]:
    """6x6 Jacobian of the first six physical components in the interior."""
    a0, a1, a2, u0, u1, xr = y[0], y[1], y[2], y[3], y[4], y[5]
    g = params.gamma
    ta = params.tau_a
    tm = params.tau_m
    br = params.br

    return np.array([
        [(1 - 2 * a0 - g * a1) / ta, -a0 * g / ta, 0.0, 0.0, 0.0, params.eps1 * params.sig1 / ta],
        [0.0, (1 - 2 * a1 - g * a2) / ta, -a1 * g / ta, 0.0, 0.0, params.eps2 * params.sig2 / ta],
        [-a2 * g / ta, 0.0, (1 - 2 * a2 - g * a0) / ta, 0.0, 0.0, params.eps3 * params.sig3 / ta],
        [params.umax / tm, params.umax / tm, 0.0, -1.0 / tm, 0.0, 0.0],
        [0.0, 0.0, params.umax / tm, 0.0, -1.0 / tm, 0.0],
        [0.0, 0.0, 0.0,
         muscle_force(1.0, 0.0, xr, params) / br,
         muscle_force(0.0, 1.0, xr, params) / br,
         muscle_force_slope(u0, u1, xr, params) / br],
    ])


def jacobian(y: NDArray[np.float64], domain: Domain, params: ModelParams) -> NDArray[np.float64]:
    """
    Reduced 6x6 Jacobian of the constrained flow in a domain.

    Pinned coordinates are evaluated at exactly zero and both their rows
    and columns are removed, so a pinned direction neither evolves nor
    drives the free directions.
    """
    pinned = PINNED[domain]
    if not pinned:
        return interior_jacobian(y, params)

    at_wall = np.array(y[:6], dtype=np.float64)
    at_wall[list(pinned)] = 0.0
    J = interior_jacobian(at_wall, params)
    J[list(pinned), :] = 0.0
    J[:, list(pinned)] = 0.0
    return J


def vector_field(
    y: NDArray[np.float64],
    domain: Domain,
    grasper: Grasper,
    params: ModelParams,
    perturbation: Optional[Perturbation] = None
) -> NDArray[np.float64]:
    """
    Compute dy/dt for the full 14-component state.

    Parameters
    ----------
    y : ndarray of shape (14,)
        Physical state followed by the variational state.
    domain : Domain
        Flow domain selecting the constrained branch.
    grasper : Grasper
        Grasper status selecting the load-coupling branch.
    params : ModelParams
        Model constants.
    perturbation : Perturbation, optional
        Sustained perturbation for the variational half.

    Returns
    -------
    dydt : ndarray of shape (14,)
    """
    if perturbation is None:
        perturbation = NO_PERTURBATION

    dydt = np.empty(N_STATE, dtype=np.float64)
    dydt[:N_PHYS] = physical_field(y, domain, grasper, params)

    v = y[N_PHYS:N_STATE]
    dydt[N_PHYS:] = jacobian(y, domain, params) @ v
    dydt[N_PHYS:] += perturbation.forcing(dydt[:6], grasper, params)
    return dydt
