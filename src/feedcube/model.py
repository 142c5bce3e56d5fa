"""
Hybrid integration engine for the feeding model.

HybridModel owns the model constants, the initial condition and the results
of its latest solve. The driver loop alternates between integrating the
current domain's vector field until one of its events fires and handing the
event to the transition engine, until the horizon is reached.
"""

from dataclasses import dataclass, replace
import logging
from typing import Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray
import pandas as pd
from scipy.integrate import solve_ivp

from .config import (
    Config,
    DEFAULT_HORIZON,
    DEFAULT_VINIT,
    DEFAULT_XINIT,
    GrasperGeometry,
    ModelParams,
    SolverConfig,
    as_numeric_array,
    as_scalar,
)
from .domains import (
    Domain,
    Grasper,
    TRANSITIONS,
    classify_domain,
    classify_grasper,
    domain_to_string,
)
from .dynamics import N_PHYS, N_VAR, Perturbation, physical_field, vector_field
from .errors import ConfigError, NoProgressError, NotSolvedError, SolverError
from .events import build_events, select_event
from .lyapunov import LyapunovAccumulator, LyapunovTrace
from .transitions import TransitionLog, apply_transition, resolve_grasp_switch

logger = logging.getLogger(__name__)

STATE_COLUMNS = [
    "a0", "a1", "a2", "u0", "u1", "xr", "S", "F",
    "v0", "v1", "v2", "v3", "v4", "v5",
]


@dataclass
class _DriverState:
    """Mutable state of the driver loop, owned by a single solve()."""
    t: float
    y: NDArray[np.float64]
    domain: Domain
    grasper: Grasper
    stalled: int = 0
    segments: int = 0


@dataclass
class _Segment:
    t: NDArray[np.float64]
    y: NDArray[np.float64]
    event: Optional[int]


class HybridModel:
    """
    Piecewise-smooth feeding model with a variational companion.

    Parameters
    ----------
    eps1, eps2, eps3 : float, optional
        Sensory feedback gains. Override the values in `params`
        (default 1e-4 each).
    xinit : array_like of shape (8,), optional
        Initial physical state (a0, a1, a2, u0, u1, xr, S, F).
    vinit : array_like of shape (6,), optional
        Initial variational state. Defaults to zero.
    horizon : float
        Final integration time.
    nu : float, sequence or str
        Sustained perturbation spec, see Perturbation.from_spec.
    t_init : float
        Initial time.
    params : ModelParams, optional
        Model constants.
    geometry : GrasperGeometry, optional
        Grasper threshold surface.
    solver : SolverConfig, optional
        Integrator and event settings.
    lyapunov : bool
        Track the running Lyapunov exponent estimate.

    Raises
    ------
    ConfigError
        If any argument is empty, non-numeric or inconsistent.
    """

    def __init__(
        self,
        eps1: Optional[float] = None,
        eps2: Optional[float] = None,
        eps3: Optional[float] = None,
        xinit: Optional[Sequence[float]] = None,
        vinit: Optional[Sequence[float]] = None,
        horizon: float = DEFAULT_HORIZON,
        nu: Union[float, Sequence[float], str, None] = 0.0,
        *,
        t_init: float = 0.0,
        params: Optional[ModelParams] = None,
        geometry: Optional[GrasperGeometry] = None,
        solver: Optional[SolverConfig] = None,
        lyapunov: bool = False
    ):
        params = params if params is not None else ModelParams()
        gains = {}
        for name, value in (("eps1", eps1), ("eps2", eps2), ("eps3", eps3)):
            if value is not None:
                gains[name] = as_scalar(name, value)
        self.params = replace(params, **gains)
        self.geometry = geometry if geometry is not None else GrasperGeometry()
        self.solver = solver if solver is not None else SolverConfig()

        self.xinit = as_numeric_array("xinit", DEFAULT_XINIT if xinit is None else xinit)
        self.vinit = as_numeric_array("vinit", DEFAULT_VINIT if vinit is None else vinit)
        if self.xinit.shape != (N_PHYS,):
            raise ConfigError(f"xinit must have {N_PHYS} entries, got {self.xinit.size}")
        if self.vinit.shape != (N_VAR,):
            raise ConfigError(f"vinit must have {N_VAR} entries, got {self.vinit.size}")
        try:
            classify_domain(self.xinit)
        except ValueError as exc:
            raise ConfigError(f"Invalid initial state: {exc}") from exc

        self.t_init = as_scalar("t_init", t_init)
        self.horizon = horizon
        self.perturbation = Perturbation.from_spec(nu)
        self.nu = nu

        self.lyapunov = bool(lyapunov)
        if self.lyapunov:
            if not np.any(self.vinit):
                raise ConfigError("Lyapunov tracking needs a non-zero vinit")
            if self.perturbation.is_sustained:
                raise ConfigError("Lyapunov tracking is incompatible with a sustained perturbation")

        self._reset()

    @classmethod
    def from_config(cls, config: Config) -> "HybridModel":
        """Build a model from a loaded Config."""
        return cls(
            xinit=config.initial.xinit,
            vinit=config.initial.vinit,
            horizon=config.initial.horizon,
            nu=config.initial.nu,
            t_init=config.initial.t_init,
            params=config.model,
            geometry=config.grasper,
            solver=config.solver,
            lyapunov=config.initial.lyapunov,
        )

    @property
    def horizon(self) -> float:
        return self._horizon

    @horizon.setter
    def horizon(self, value: float) -> None:
        value = as_scalar("horizon", value)
        if value <= self.t_init:
            raise ConfigError(f"horizon ({value}) must be greater than t_init ({self.t_init})")
        self._horizon = value
        self._reset()

    def _reset(self) -> None:
        self._solved = False
        self._t = None
        self._y = None
        self._domain = None
        self._grasper = None
        self._log = TransitionLog()
        self._lyapunov = None

    @property
    def is_solved(self) -> bool:
        return self._solved

    def _require_solved(self) -> None:
        if not self._solved:
            raise NotSolvedError()

    # ------------------------------------------------------------------
    # Driver loop
    # ------------------------------------------------------------------

    def solve(self) -> None:
        """
        Integrate from t_init to the horizon.

        Replaces the results and transition log of any previous solve.

        Raises
        ------
        NoProgressError
            If too many consecutive segments have zero length.
        SolverError
            If the integrator fails on a segment.
        TransitionError
            If a jump matrix cannot be constructed.
        """
        self._reset()
        y0 = np.concatenate([self.xinit, self.vinit])
        state = _DriverState(
            t=self.t_init,
            y=y0,
            domain=classify_domain(self.xinit),
            grasper=classify_grasper(self.xinit, self.geometry),
        )
        log = TransitionLog()
        accumulator = LyapunovAccumulator(self.t_init, self.vinit) if self.lyapunov else None

        logger.info(
            f"Solving t=[{self.t_init:.6g}, {self.horizon:.6g}] from "
            f"{domain_to_string(state.domain)}, grasper "
            f"{'closed' if state.grasper == Grasper.CLOSED else 'open'}"
        )

        times, states, domains, graspers = [], [], [], []
        while state.t < self.horizon:
            seg = self._integrate(state)
            state.segments += 1

            times.append(seg.t)
            states.append(seg.y)
            domains.append(np.full(seg.t.size, int(state.domain), dtype=np.int8))
            graspers.append(np.full(seg.t.size, int(state.grasper), dtype=np.int8))

            t_end = float(seg.t[-1])
            y_end = np.array(seg.y[-1], dtype=np.float64)
            if accumulator is not None:
                y_end[N_PHYS:] = accumulator.update(seg.t, seg.y[:, N_PHYS:])

            if seg.event is not None and t_end - state.t < self.solver.zero_length:
                state.stalled += 1
                if state.stalled >= self.solver.max_stalled_segments:
                    raise NoProgressError(t_end, int(state.domain), state.stalled)
            else:
                state.stalled = 0

            state.t = t_end
            state.y = y_end
            if seg.event is None:
                break

            dest = TRANSITIONS[state.domain][seg.event]
            if dest == Domain.GRASP_SWITCH:
                state.y, state.grasper = resolve_grasp_switch(
                    log, state.t, state.y, state.domain, state.grasper,
                    self.params, self.geometry, self.solver.jump_condition_warn,
                )
            else:
                state.y = apply_transition(
                    log, state.t, state.y, state.domain, dest, state.grasper, self.params
                )
                state.domain = dest

        self._t = np.concatenate(times)
        self._y = np.vstack(states)
        self._domain = np.concatenate(domains)
        self._grasper = np.concatenate(graspers)
        self._log = log
        self._lyapunov = accumulator.trace() if accumulator is not None else None
        self._solved = True

        logger.info(
            f"Solved in {state.segments} segments: {len(log.entries)} entries, "
            f"{len(log.exits)} exits, {len(log.switches)} grasper switches"
        )

    def _integrate(self, state: _DriverState) -> _Segment:
        """Integrate the current domain until its first event or the horizon."""
        domain, grasper = state.domain, state.grasper
        params, perturbation = self.params, self.perturbation

        def rhs(t, y):
            return vector_field(y, domain, grasper, params, perturbation)

        f0 = physical_field(state.y, domain, grasper, params)
        events = build_events(
            domain, grasper, params, self.geometry, state.y, f0,
            tolerance=self.solver.event_tolerance,
            offset=self.solver.event_offset,
        )

        sol = solve_ivp(
            rhs,
            (state.t, self.horizon),
            state.y,
            method=self.solver.method,
            events=events,
            rtol=self.solver.rtol,
            atol=self.solver.atol,
            max_step=self.solver.max_step,
        )
        if sol.status == -1:
            raise SolverError(
                f"Integration failed in {domain_to_string(domain)} at t={state.t:.9g}: {sol.message}"
            )

        event = None
        if sol.status == 1:
            hit = select_event(sol.t_events, sol.y_events)
            if hit is None:
                raise SolverError(f"Integrator stopped without an event at t={sol.t[-1]:.9g}")
            event = hit[0]

        logger.debug(
            f"segment {state.segments}: {domain_to_string(domain)} "
            f"t=[{state.t:.9f}, {sol.t[-1]:.9f}] {sol.t.size} samples, event={event}"
        )
        return _Segment(t=sol.t, y=sol.y.T, event=event)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def t(self) -> NDArray[np.float64]:
        """Sample times of the latest solve (repeated at transitions)."""
        self._require_solved()
        return self._t

    @property
    def y(self) -> NDArray[np.float64]:
        """States of the latest solve, shape (n_samples, 14)."""
        self._require_solved()
        return self._y

    @property
    def domains(self) -> NDArray[np.int8]:
        """Domain active for each sample."""
        self._require_solved()
        return self._domain

    @property
    def transitions(self) -> TransitionLog:
        self._require_solved()
        return self._log

    @property
    def grasper_switches(self) -> list:
        self._require_solved()
        return list(self._log.switches)

    @property
    def lyapunov_trace(self) -> Optional[LyapunovTrace]:
        """Running Lyapunov estimates, or None if tracking was disabled."""
        self._require_solved()
        return self._lyapunov

    @property
    def final_state(self) -> NDArray[np.float64]:
        self._require_solved()
        return self._y[-1].copy()

    def trajectory(self) -> pd.DataFrame:
        """
        Solution as a table.

        Returns
        -------
        DataFrame
            Columns t, the 14 state components, domain and grasper.
        """
        self._require_solved()
        df = pd.DataFrame(self._y, columns=STATE_COLUMNS)
        df.insert(0, "t", self._t)
        df["domain"] = self._domain
        df["grasper"] = self._grasper
        return df

    def phase_response(self, z0: Optional[Sequence[float]] = None):
        """Backward adjoint solution, see adjoint.phase_response."""
        from .adjoint import phase_response
        return phase_response(self, z0)

    def estimate_period(
        self,
        lower: float,
        upper: float,
        max_iter: int = 20,
        target: float = 1e-5
    ) -> float:
        """Bisection period search, see period.estimate_period."""
        from .period import estimate_period
        return estimate_period(
            self, lower, upper, max_iter=max_iter, target=target, stacklevel=3
        )

    def __repr__(self) -> str:
        status = "solved" if self._solved else "unsolved"
        return (
            f"HybridModel(t=[{self.t_init:.6g}, {self.horizon:.6g}], "
            f"nu={self.perturbation.kind}, {status})"
        )
