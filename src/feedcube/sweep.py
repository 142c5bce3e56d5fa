"""
Grasper-geometry parameter sweep.

Each grid point rotates and shifts the open/close threshold surface, solves
a fresh model with a small constant load, and measures the net inward load
rate. Points are independent and run serially.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
import time
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from .config import Config, GrasperGeometry
from .errors import FeedcubeError
from .metrics import intake_rate
from .model import HybridModel

logger = logging.getLogger(__name__)


@dataclass
class PointResult:
    """Results for a single grid point."""
    angle: float
    threshold: float
    intake_rate: float
    grasper_switches: int
    failed: bool


@dataclass
class SweepResult:
    """Results from a complete grasper-geometry sweep."""
    # Grid parameters
    angles: NDArray[np.float64]         # Shape (n_angle,)
    thresholds: NDArray[np.float64]     # Shape (n_thresh,)

    # Result arrays (all shape (n_angle, n_thresh))
    intake_rate: NDArray[np.float64]
    grasper_switches: NDArray[np.int32]
    failed: NDArray[np.bool_]

    # Metadata
    config: Config
    config_hash: str
    timestamp: str
    elapsed_seconds: float
    total_points: int

    def get_point(self, i_angle: int, i_thresh: int) -> PointResult:
        """Get result for a specific grid point."""
        return PointResult(
            angle=float(self.angles[i_angle]),
            threshold=float(self.thresholds[i_thresh]),
            intake_rate=float(self.intake_rate[i_angle, i_thresh]),
            grasper_switches=int(self.grasper_switches[i_angle, i_thresh]),
            failed=bool(self.failed[i_angle, i_thresh]),
        )


def sweep_grid(config: Config) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Angles and thresholds of the sweep grid.

    Angles cover [0, 2*pi) evenly; thresholds are evenly spaced over
    [c_min, c_max] and scaled by 1/sqrt(2).
    """
    angles = np.linspace(0.0, 2 * np.pi, config.sweep.n_angle, endpoint=False)
    thresholds = np.linspace(
        config.sweep.c_min, config.sweep.c_max, config.sweep.n_thresh
    ) / np.sqrt(2)
    return angles, thresholds


def solve_point(config: Config, angle: float, threshold: float) -> HybridModel:
    """Solve the model for one grasper geometry."""
    xinit = list(config.initial.xinit)
    xinit[7] = config.sweep.force

    model = HybridModel(
        xinit=xinit,
        vinit=config.initial.vinit,
        horizon=config.sweep.horizon,
        nu=config.initial.nu,
        t_init=config.initial.t_init,
        params=config.model,
        geometry=GrasperGeometry.from_angle(angle, threshold),
        solver=config.solver,
    )
    model.solve()
    return model


def run_sweep(
    config: Config,
    progress_callback: Optional[callable] = None
) -> SweepResult:
    """
    Run the grasper-geometry sweep.

    Parameters
    ----------
    config : Config
        Complete configuration for the sweep.
    progress_callback : callable, optional
        Called with (current_point, total_points) for progress updates.

    Returns
    -------
    result : SweepResult
        Complete sweep results. Points whose solve raised are marked in
        `failed` and carry a NaN rate.
    """
    from .io import compute_config_hash

    start_time = time.time()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    angles, thresholds = sweep_grid(config)
    n_angle, n_thresh = angles.size, thresholds.size

    rate_arr = np.zeros((n_angle, n_thresh), dtype=np.float64)
    switch_arr = np.zeros((n_angle, n_thresh), dtype=np.int32)
    failed = np.zeros((n_angle, n_thresh), dtype=np.bool_)

    total_points = n_angle * n_thresh
    current_point = 0

    for i_angle, angle in enumerate(angles):
        for i_thresh, threshold in enumerate(thresholds):
            try:
                model = solve_point(config, angle, threshold)
            except FeedcubeError as exc:
                logger.warning(
                    f"Sweep point angle={angle:.4f}, threshold={threshold:.4f} failed: {exc}"
                )
                rate_arr[i_angle, i_thresh] = np.nan
                failed[i_angle, i_thresh] = True
            else:
                rate_arr[i_angle, i_thresh] = intake_rate(
                    model.t, model.y[:, 6], t_discard=config.sweep.t_discard
                )
                switch_arr[i_angle, i_thresh] = len(model.grasper_switches)

            current_point += 1
            if progress_callback is not None:
                progress_callback(current_point, total_points)

    elapsed = time.time() - start_time
    config_hash = compute_config_hash(config)

    return SweepResult(
        angles=angles,
        thresholds=thresholds,
        intake_rate=rate_arr,
        grasper_switches=switch_arr,
        failed=failed,
        config=config,
        config_hash=config_hash,
        timestamp=timestamp,
        elapsed_seconds=elapsed,
        total_points=total_points,
    )


def get_sweep_summary(result: SweepResult) -> dict:
    """
    Get a summary of sweep results.

    Parameters
    ----------
    result : SweepResult
        Sweep results.

    Returns
    -------
    summary : dict
        Summary statistics.
    """
    ok = ~result.failed
    rates = result.intake_rate[ok]
    if rates.size:
        i_best = int(np.argmax(np.where(ok, result.intake_rate, -np.inf)))
        i_angle, i_thresh = np.unravel_index(i_best, result.intake_rate.shape)
        best = {
            "angle": float(result.angles[i_angle]),
            "threshold": float(result.thresholds[i_thresh]),
            "intake_rate": float(result.intake_rate[i_angle, i_thresh]),
        }
    else:
        best = None

    return {
        "total_points": result.total_points,
        "failed_points": int(np.sum(result.failed)),
        "feeding_points": int(np.sum(rates > 0)),
        "zero_rate_points": int(np.sum(rates == 0)),
        "intake_rate_max": float(np.max(rates)) if rates.size else 0.0,
        "intake_rate_mean": float(np.mean(rates)) if rates.size else 0.0,
        "best_geometry": best,
        "elapsed_seconds": result.elapsed_seconds,
        "points_per_second": result.total_points / result.elapsed_seconds if result.elapsed_seconds > 0 else 0.0,
    }
