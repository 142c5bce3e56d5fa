"""
Running estimate of the leading Lyapunov exponent.

The variational state is renormalized to unit length after every segment;
the accumulated log growth is carried in a scale factor so that the
estimate at each sample is

    lambda(t) = (scale + 0.5 log |v(t)|^2) / (t - t_init)
"""

from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from .errors import SolverError


@dataclass(frozen=True)
class LyapunovTrace:
    """Per-sample Lyapunov estimates of one solve."""
    t: NDArray[np.float64]
    estimate: NDArray[np.float64]
    scale: float

    @property
    def final(self) -> float:
        """Last finite estimate, or NaN if there is none."""
        finite = self.estimate[np.isfinite(self.estimate)]
        return float(finite[-1]) if finite.size else float("nan")


@dataclass
class LyapunovAccumulator:
    """
    Incremental exponent estimator fed one integration segment at a time.

    Parameters
    ----------
    t_init : float
        Start time of the solve.
    v0 : ndarray of shape (6,)
        Initial variational vector; must be non-zero.
    """
    t_init: float
    v0: NDArray[np.float64]
    scale: float = field(init=False)
    _t: list = field(init=False, default_factory=list)
    _estimate: list = field(init=False, default_factory=list)

    def __post_init__(self):
        norm = float(np.linalg.norm(self.v0))
        if norm == 0.0:
            raise ValueError("Lyapunov tracking needs a non-zero initial variation")
        self.scale = -np.log(norm)

    def update(self, t: NDArray[np.float64], v: NDArray[np.float64]) -> NDArray[np.float64]:
        """
        Record estimates for a segment and renormalize its end point.

        Parameters
        ----------
        t : ndarray of shape (n,)
            Sample times of the segment.
        v : ndarray of shape (n, 6)
            Variational state at each sample.

        Returns
        -------
        v_end : ndarray of shape (6,)
            Unit-length variational state to continue from.
        """
        elapsed = np.asarray(t, dtype=np.float64) - self.t_init
        with np.errstate(divide="ignore", invalid="ignore"):
            growth = 0.5 * np.log(np.sum(np.asarray(v) ** 2, axis=1))
            estimate = np.where(elapsed > 0, (self.scale + growth) / elapsed, np.nan)
        self._t.extend(np.asarray(t, dtype=np.float64).tolist())
        self._estimate.extend(estimate.tolist())

        v_end = np.asarray(v[-1], dtype=np.float64)
        norm = float(np.linalg.norm(v_end))
        if norm == 0.0 or not np.isfinite(norm):
            raise SolverError(f"Variational state degenerated (norm {norm}) at t={t[-1]}")
        self.scale += np.log(norm)
        return v_end / norm

    def trace(self) -> LyapunovTrace:
        return LyapunovTrace(
            t=np.array(self._t, dtype=np.float64),
            estimate=np.array(self._estimate, dtype=np.float64),
            scale=float(self.scale),
        )
