"""
Input/Output functionality for hybrid model runs.

Handles saving and loading solutions and sweep results, creating run
folders, and computing reproducibility hashes.
"""

import json
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Union, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .config import Config, save_config, load_config
from .domains import domain_to_string
from .sweep import SweepResult


def compute_config_hash(config: Config) -> str:
    """
    Compute a stable hash of the configuration.

    The hash is deterministic and based on the resolved config values.

    Parameters
    ----------
    config : Config
        Configuration to hash.

    Returns
    -------
    hash_str : str
        SHA256 hash of the configuration (first 12 characters).
    """
    config_dict = config.to_dict()
    config_json = json.dumps(config_dict, sort_keys=True)
    hash_full = hashlib.sha256(config_json.encode()).hexdigest()
    return hash_full[:12]


def create_run_folder(
    config: Config,
    timestamp: Optional[str] = None
) -> Path:
    """
    Create a unique folder for a run.

    Folder name format: run_<YYYYmmdd_HHMMSS>_<hash>

    Parameters
    ----------
    config : Config
        Configuration for the run.
    timestamp : str, optional
        Timestamp string. If None, uses current time.

    Returns
    -------
    run_path : Path
        Path to the created run folder.
    """
    if timestamp is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    config_hash = compute_config_hash(config)
    folder_name = f"run_{timestamp}_{config_hash}"

    run_path = Path(config.run.out_dir) / folder_name
    run_path.mkdir(parents=True, exist_ok=True)

    return run_path


# ----------------------------------------------------------------------
# Single solves
# ----------------------------------------------------------------------

@dataclass
class SolutionRecord:
    """A solve loaded back from a run folder."""
    config: Config
    trajectory: pd.DataFrame
    metadata: dict
    lyapunov: Optional[pd.DataFrame] = None
    phase_response: Optional[pd.DataFrame] = None


def _solution_to_json_dict(model, config: Config, period: Optional[float]) -> dict:
    log = model.transitions
    trace = model.lyapunov_trace
    return {
        "metadata": {
            "config_hash": compute_config_hash(config),
            "timestamp": datetime.now().strftime("%Y%m%d_%H%M%S"),
            "n_samples": int(model.t.size),
            "t_init": model.t_init,
            "horizon": model.horizon,
            "period": period,
        },
        "final_state": model.final_state.tolist(),
        "transitions": {
            "summary": log.summary(),
            "entries": [
                {
                    "t": r.t,
                    "domain": domain_to_string(r.domain),
                    "previous": domain_to_string(r.previous),
                }
                for r in log.entries
            ],
            "exit_times": log.exit_times.tolist(),
            "close_times": log.close_times.tolist(),
            "open_times": log.open_times.tolist(),
            "x_wall_enter": list(log.x_wall_enter),
            "x_wall_exit": list(log.x_wall_exit),
            "z_wall_enter": list(log.z_wall_enter),
            "z_wall_exit": list(log.z_wall_exit),
        },
        "lyapunov": None if trace is None else {
            "final": trace.final if np.isfinite(trace.final) else None,
            "scale": trace.scale,
        },
        "config": config.to_dict(),
    }


def save_solution(
    model,
    config: Config,
    run_path: Union[str, Path],
    period: Optional[float] = None,
    phase_response=None
) -> dict[str, Path]:
    """
    Save a solved model to a run folder.

    Saves:
    - config_resolved.yaml: The resolved configuration
    - solution.json: Metadata, final state and transition history
    - trajectory.csv: Samples of the trajectory
    - lyapunov.csv: Running Lyapunov estimates (if tracked)
    - prc.csv: Phase-response curve (if given)

    Parameters
    ----------
    model : HybridModel
        Solved model.
    config : Config
        Configuration the model was built from.
    run_path : str or Path
        Path to the run folder.
    period : float, optional
        Period estimate to record in the metadata.
    phase_response : PhaseResponse, optional
        Adjoint solution to save alongside.

    Returns
    -------
    paths : dict
        Dictionary mapping output names to file paths.
    """
    run_path = Path(run_path)
    run_path.mkdir(parents=True, exist_ok=True)

    paths = {}

    config_path = run_path / "config_resolved.yaml"
    save_config(config, config_path)
    paths["config"] = config_path

    json_path = run_path / "solution.json"
    with open(json_path, "w") as f:
        json.dump(_solution_to_json_dict(model, config, period), f, indent=2)
    paths["json"] = json_path

    csv_path = run_path / "trajectory.csv"
    model.trajectory().to_csv(csv_path, index=False)
    paths["trajectory"] = csv_path

    trace = model.lyapunov_trace
    if trace is not None:
        lyap_path = run_path / "lyapunov.csv"
        pd.DataFrame({"t": trace.t, "estimate": trace.estimate}).to_csv(lyap_path, index=False)
        paths["lyapunov"] = lyap_path

    if phase_response is not None:
        prc_path = run_path / "prc.csv"
        phase_response.to_frame().to_csv(prc_path, index=False)
        paths["prc"] = prc_path

    return paths


def load_solution(run_path: Union[str, Path]) -> SolutionRecord:
    """
    Load a saved solve from a run folder.

    Parameters
    ----------
    run_path : str or Path
        Path to the run folder.

    Returns
    -------
    record : SolutionRecord
    """
    run_path = Path(run_path)
    config = load_config(run_path / "config_resolved.yaml")

    with open(run_path / "solution.json", "r") as f:
        metadata = json.load(f)

    trajectory = pd.read_csv(run_path / "trajectory.csv")

    lyap_path = run_path / "lyapunov.csv"
    prc_path = run_path / "prc.csv"
    return SolutionRecord(
        config=config,
        trajectory=trajectory,
        metadata=metadata,
        lyapunov=pd.read_csv(lyap_path) if lyap_path.exists() else None,
        phase_response=pd.read_csv(prc_path) if prc_path.exists() else None,
    )


# ----------------------------------------------------------------------
# Sweeps
# ----------------------------------------------------------------------

def save_results(
    result: SweepResult,
    run_path: Union[str, Path]
) -> dict[str, Path]:
    """
    Save sweep results to a run folder.

    Saves:
    - config_resolved.yaml: The resolved configuration
    - results.json: Metadata and arrays as JSON
    - results.csv: Long-format results for analysis

    Parameters
    ----------
    result : SweepResult
        Sweep results to save.
    run_path : str or Path
        Path to the run folder.

    Returns
    -------
    paths : dict
        Dictionary mapping output names to file paths.
    """
    run_path = Path(run_path)
    run_path.mkdir(parents=True, exist_ok=True)

    paths = {}

    config_path = run_path / "config_resolved.yaml"
    save_config(result.config, config_path)
    paths["config"] = config_path

    json_path = run_path / "results.json"
    with open(json_path, "w") as f:
        json.dump(_result_to_json_dict(result), f, indent=2)
    paths["json"] = json_path

    csv_path = run_path / "results.csv"
    _result_to_dataframe(result).to_csv(csv_path, index=False)
    paths["csv"] = csv_path

    return paths


def _result_to_json_dict(result: SweepResult) -> dict:
    """Convert SweepResult to JSON-serializable dictionary."""
    # NaN marks failed points; JSON has no NaN so store null
    rates = [
        [None if np.isnan(v) else float(v) for v in row]
        for row in result.intake_rate
    ]
    return {
        "metadata": {
            "config_hash": result.config_hash,
            "timestamp": result.timestamp,
            "elapsed_seconds": result.elapsed_seconds,
            "total_points": result.total_points
        },
        "grid": {
            "angles": result.angles.tolist(),
            "thresholds": result.thresholds.tolist(),
            "n_angle": len(result.angles),
            "n_thresh": len(result.thresholds)
        },
        "results": {
            "intake_rate": rates,
            "grasper_switches": result.grasper_switches.tolist(),
            "failed": result.failed.tolist()
        },
        "config": result.config.to_dict()
    }


def _result_to_dataframe(result: SweepResult) -> pd.DataFrame:
    """Convert SweepResult to long-format DataFrame."""
    rows = []
    for i_angle, angle in enumerate(result.angles):
        for i_thresh, threshold in enumerate(result.thresholds):
            rows.append({
                "angle": angle,
                "threshold": threshold,
                "intake_rate": result.intake_rate[i_angle, i_thresh],
                "grasper_switches": result.grasper_switches[i_angle, i_thresh],
                "failed": result.failed[i_angle, i_thresh]
            })
    return pd.DataFrame(rows)


def load_results(run_path: Union[str, Path]) -> SweepResult:
    """
    Load sweep results from a run folder.

    Parameters
    ----------
    run_path : str or Path
        Path to the run folder.

    Returns
    -------
    result : SweepResult
        Loaded sweep results.
    """
    run_path = Path(run_path)
    config = load_config(run_path / "config_resolved.yaml")

    with open(run_path / "results.json", "r") as f:
        data = json.load(f)

    rates = np.array(
        [[np.nan if v is None else v for v in row] for row in data["results"]["intake_rate"]],
        dtype=np.float64,
    )
    return SweepResult(
        angles=np.array(data["grid"]["angles"]),
        thresholds=np.array(data["grid"]["thresholds"]),
        intake_rate=rates.reshape(data["grid"]["n_angle"], data["grid"]["n_thresh"]),
        grasper_switches=np.array(data["results"]["grasper_switches"], dtype=np.int32),
        failed=np.array(data["results"]["failed"], dtype=np.bool_),
        config=config,
        config_hash=data["metadata"]["config_hash"],
        timestamp=data["metadata"]["timestamp"],
        elapsed_seconds=data["metadata"]["elapsed_seconds"],
        total_points=data["metadata"]["total_points"]
    )


def list_runs(out_dir: Union[str, Path] = "out") -> list[Path]:
    """
    List all run folders in an output directory.

    Parameters
    ----------
    out_dir : str or Path
        Output directory to search.

    Returns
    -------
    runs : list of Path
        List of run folder paths, sorted by name (most recent last).
    """
    out_path = Path(out_dir)
    if not out_path.exists():
        return []

    runs = [p for p in out_path.iterdir() if p.is_dir() and p.name.startswith("run_")]
    return sorted(runs)


def get_latest_run(out_dir: Union[str, Path] = "out") -> Optional[Path]:
    """Most recently modified run folder, or None if no runs exist."""
    runs = list_runs(out_dir)
    if not runs:
        return None
    return max(runs, key=lambda p: p.stat().st_mtime)
