"""
Bisection estimate of the limit-cycle period.

The sign pattern of x(T) - x(0) over the first six physical coordinates
tells whether a horizon T falls short of or overshoots a full cycle. The
bracket [L, R] is halved toward the end whose pattern matches the midpoint
less.
"""

import logging
import warnings

import numpy as np

from .errors import ConvergenceWarning

logger = logging.getLogger(__name__)


def estimate_period(
    model,
    lower: float,
    upper: float,
    max_iter: int = 20,
    target: float = 1e-5,
    stacklevel: int = 2
) -> float:
    """
    Estimate the period of the model's limit cycle by bisection.

    Parameters
    ----------
    model : HybridModel
        Model started on (or near) the limit cycle. Its horizon is changed;
        on return it is solved at the returned estimate.
    lower, upper : float
        Bracket for the period; order does not matter.
    max_iter : int
        Maximum number of bisection steps.
    target : float
        Stop once the bracket is narrower than this.
    stacklevel : int
        Passed to `warnings.warn` so the warning names the caller's line.

    Returns
    -------
    period : float
        Midpoint of the final bracket.

    Warns
    -----
    ConvergenceWarning
        If `max_iter` steps were taken before the bracket reached `target`.
    """
    left, right = (lower, upper) if lower < upper else (upper, lower)
    x0 = np.asarray(model.xinit[:6], dtype=np.float64)
    cache: dict[float, np.ndarray] = {}

    def sign_pattern(horizon: float) -> np.ndarray:
        if horizon not in cache:
            model.horizon = horizon
            model.solve()
            cache[horizon] = model.final_state[:6]
        return np.sign(cache[horizon] - x0)

    mid = 0.5 * (left + right)
    search = 0
    while search < max_iter and abs(right - left) > target:
        left_sign = sign_pattern(left)
        right_sign = sign_pattern(right)
        mid = 0.5 * (left + right)
        mid_sign = sign_pattern(mid)
        search += 1

        if np.sum(left_sign == mid_sign) < np.sum(right_sign == mid_sign):
            right = mid
        else:
            left = mid
        logger.debug(f"period search {search}: [{left:.9f}, {right:.9f}]")

    if search == max_iter and abs(right - left) > target:
        warnings.warn(
            f"Period search stopped after {max_iter} iterations with bracket width "
            f"{abs(right - left):.3g}; try a tighter initial bracket.",
            ConvergenceWarning,
            stacklevel=stacklevel,
        )

    if not (model.is_solved and model.horizon == mid):
        model.horizon = mid
        model.solve()

    logger.info(f"Estimated period {mid:.9f} after {search} iterations")
    return float(mid)
