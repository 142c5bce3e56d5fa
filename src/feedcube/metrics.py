"""
Load-intake analysis of a solved trajectory.

While the grasper is open the load displacement S is frozen, so the open
phases show up as plateaus in S. The net inward rate is measured between the
end of the first and the end of the last plateau after a transient.
"""

import numpy as np
from numpy.typing import NDArray

PLATEAU_RISE = 1e-10


def plateau_ends(S: NDArray[np.float64], rise: float = PLATEAU_RISE) -> NDArray[np.intp]:
    """
    Indices where a plateau of S ends.

    A plateau end is a sample preceded by two zero first differences and
    followed by an increase larger than `rise`.

    Parameters
    ----------
    S : ndarray
        Load displacement samples.
    rise : float
        Minimum increase marking the end of a plateau.

    Returns
    -------
    indices : ndarray of int
    """
    dS = np.diff(np.asarray(S, dtype=np.float64))
    if dS.size < 3:
        return np.array([], dtype=np.intp)
    mask = (dS[:-2] == 0) & (dS[1:-1] == 0) & (dS[2:] > rise)
    return np.flatnonzero(mask) + 2


def intake_rate(
    t: NDArray[np.float64],
    S: NDArray[np.float64],
    t_discard: float = 10.0
) -> float:
    """
    Net inward load rate of a trajectory.

    Parameters
    ----------
    t : ndarray
        Sample times (may repeat at transitions).
    S : ndarray
        Load displacement at each sample.
    t_discard : float
        Samples at or before this time are treated as transient.

    Returns
    -------
    rate : float
        (S[i1] - S[i2]) / (t[i2] - t[i1]) between the first and last plateau
        ends, positive for inward motion. 0.0 when fewer than two distinct
        plateau ends exist.
    """
    t = np.asarray(t, dtype=np.float64)
    S = np.asarray(S, dtype=np.float64)
    if t.shape != S.shape:
        raise ValueError(f"t and S must have the same shape, got {t.shape} and {S.shape}")

    keep = t > t_discard
    t, S = t[keep], S[keep]
    if t.size:
        distinct = np.append(True, np.diff(t) > 0)
        t, S = t[distinct], S[distinct]

    ends = plateau_ends(S)
    if ends.size == 0:
        return 0.0

    i1, i2 = ends[0], ends[-1]
    delta_t = t[i2] - t[i1]
    if i1 == i2 or delta_t <= 0:
        return 0.0
    return float((S[i1] - S[i2]) / delta_t)
